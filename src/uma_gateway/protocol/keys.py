"""secp256k1 key material for tenants.

Private keys are raw 32-byte scalars and public keys hex SEC1 points, the
forms the ``uma`` SDK signs and encrypts with.
"""

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec


CURVE = ec.SECP256K1()
PRIVATE_KEY_SIZE = 32


def load_private_key(private_key: bytes) -> ec.EllipticCurvePrivateKey:
    """Load a raw 32-byte scalar."""
    if len(private_key) != PRIVATE_KEY_SIZE:
        raise ValueError("private key must be 32 bytes")
    return ec.derive_private_key(int.from_bytes(private_key, "big"), CURVE)


def public_key_hex(private_key: bytes, compressed: bool = True) -> str:
    """Hex SEC1 encoding of the public key for ``private_key``."""
    point_format = (
        serialization.PublicFormat.CompressedPoint
        if compressed
        else serialization.PublicFormat.UncompressedPoint
    )
    public = load_private_key(private_key).public_key()
    return public.public_bytes(serialization.Encoding.X962, point_format).hex()


def generate_keypair() -> tuple[bytes, str]:
    """New key pair as (raw private scalar, compressed public key hex)."""
    key = ec.generate_private_key(CURVE)
    private = key.private_numbers().private_value.to_bytes(PRIVATE_KEY_SIZE, "big")
    return private, public_key_hex(private)


def load_cert_chain(chain: list[str] | None) -> list[x509.Certificate] | None:
    """Certificates from their hex DER wire form, leaf first.

    Raises:
        ValueError: If an entry is not a hex encoded DER certificate
    """
    if not chain:
        return None
    return [x509.load_der_x509_certificate(bytes.fromhex(cert)) for cert in chain]
