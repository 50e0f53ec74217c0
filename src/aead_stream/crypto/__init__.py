"""Cryptographic building blocks: AEAD mode adapters, keyfiles and secure memory."""
