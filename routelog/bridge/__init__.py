"""Bridge layer between routelog and libsodium (via PyNaCl).

Modules
-------
field_crypto
    ``FieldEncryptor``: per-field ChaCha20-Poly1305 encryption of log entry
    data and the matching decryption for readers.  Key problems degrade to
    plaintext at write time and raise ``EncryptionKeyError`` at read time.
"""
