from cryptography.hazmat.primitives.asymmetric.ed25519 import Ed25519PrivateKey
from cryptography.hazmat.primitives import serialization
import base64
import hashlib
import os

os.makedirs("keys", exist_ok=True)

# Attestor signing key (also the Sui sender for submissions)
sk = Ed25519PrivateKey.generate()
with open("keys/attestor_ed25519_sk.pem", "wb") as f:
    f.write(sk.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption()
    ))
pub_raw = sk.public_key().public_bytes(
    encoding=serialization.Encoding.Raw,
    format=serialization.PublicFormat.Raw
)
with open("keys/attestor_ed25519_pk.b64", "w") as f:
    f.write(base64.b64encode(pub_raw).decode() + "\n")

address = "0x" + hashlib.blake2b(b"\x00" + pub_raw, digest_size=32).hexdigest()
print("Generated: keys/attestor_ed25519_sk.pem, keys/attestor_ed25519_pk.b64")
print(f"Sui address (fund for gas before enabling submission): {address}")
