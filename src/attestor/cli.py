from __future__ import annotations

import argparse
import base64
import json
from pathlib import Path

from .crypto.keyloader import ensure_server_key, load_pem_key
from .crypto.signer import Ed25519Signer, sui_address
from .crypto.verify import verify_attestation
from .models import Attestation


def cmd_keygen(args: argparse.Namespace) -> int:
    ensure_server_key(args.out)
    signer = Ed25519Signer(load_pem_key(args.out))
    pub = signer.public_key()
    print(json.dumps({
        "path": args.out,
        "publicKey": base64.b64encode(pub).decode(),
        "address": sui_address(pub),
    }, indent=2))
    return 0


def cmd_verify(args: argparse.Namespace) -> int:
    data = json.loads(Path(args.input).read_text(encoding="utf-8"))
    # accept a full /verify response as well as a bare attestation
    if "attestation" in data:
        data = data["attestation"]
    att = Attestation.from_json(data)
    expected = base64.b64decode(args.pub_b64) if args.pub_b64 else None
    ok = verify_attestation(att, expected_public_key=expected)
    print(json.dumps({
        "verified": ok,
        "subject": att.subject,
        "contentId": att.content_id,
        "contentDigest": att.content_digest,
        "signerAddress": sui_address(att.signer_public_key),
    }, indent=2))
    return 0 if ok else 1


def cmd_serve(args: argparse.Namespace) -> int:  # pragma: no cover - process entry
    import uvicorn

    uvicorn.run("attestor.app:create_app", factory=True, host=args.host, port=args.port)
    return 0


def main(argv: list[str] | None = None) -> int:
    p = argparse.ArgumentParser("attestor")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_key = sub.add_parser("keygen", help="create a PKCS#8 Ed25519 signing key if missing and print its public key")
    p_key.add_argument("--out", default="keys/attestor_ed25519_sk.pem")
    p_key.set_defaults(func=cmd_keygen)

    p_ver = sub.add_parser("verify", help="verify an attestation JSON offline")
    p_ver.add_argument("input")
    p_ver.add_argument("--pub-b64", dest="pub_b64", help="pin the expected signer public key")
    p_ver.set_defaults(func=cmd_verify)

    p_srv = sub.add_parser("serve")
    p_srv.add_argument("--host", default="0.0.0.0")
    p_srv.add_argument("--port", type=int, default=3001)
    p_srv.set_defaults(func=cmd_serve)

    args = p.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
