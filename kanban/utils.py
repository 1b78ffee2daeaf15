import secrets

ID_ALPHABET = "useandom-26T198340PX75pxJACKVERYMINDBUSHWOLF_GQZbfghjklqvwyzrict"
ID_LENGTH = 21
# client-minted ids only need to fit the key columns
ID_MAX_LENGTH = 64


def new_id() -> str:
    """Return a 21-character URL-safe id (~126 bits of entropy)."""
    return "".join(secrets.choice(ID_ALPHABET) for _ in range(ID_LENGTH))
