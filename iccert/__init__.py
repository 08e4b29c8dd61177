"""Hash trees, certificates, delegation chains and HTTP response certification for Internet Computer canisters."""

__version__ = "0.1.0"

__all__ = [
    "canister_sig",
    "certexp",
    "certificate",
    "command",
    "delegation",
    "hashing",
    "hashtree",
    "httpverify",
]