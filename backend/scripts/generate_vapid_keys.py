"""
Generate a VAPID key pair for Web Push.

Prints the lines to put in .env. The public key also goes to the frontend as
the `applicationServerKey` used when subscribing.
"""
from cryptography.hazmat.primitives import serialization
from py_vapid import Vapid
from py_vapid.utils import b64urlencode


def generate_keys():
    vapid = Vapid()
    vapid.generate_keys()

    public_raw = vapid.public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    private_raw = vapid.private_key.private_numbers().private_value.to_bytes(32, "big")
    return b64urlencode(public_raw), b64urlencode(private_raw)


if __name__ == "__main__":
    public_key, private_key = generate_keys()
    print("VAPID keys generated. Add these to your .env file:\n")
    print(f"VAPID_PUBLIC_KEY={public_key}")
    print(f"VAPID_PRIVATE_KEY={private_key}")
    print("VAPID_CONTACT=mailto:you@example.com")
