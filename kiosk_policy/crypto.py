# crypto.py
# Fernet helpers for secrets kept in the JSON config (kiosk account password)

import os

from cryptography.fernet import Fernet, InvalidToken

SECRET_KEY_ENV = "KIOSK_SECRET_KEY"


def generate_key():
    return Fernet.generate_key().decode()


def resolve_key(config):
    """Key from the environment first, then from the config file."""
    key = os.environ.get(SECRET_KEY_ENV) or config.get("Secret_Key", "")
    return key.strip() if key else ""


def encrypt_data(plain_text, key):
    fernet = Fernet(key)
    return fernet.encrypt(plain_text.encode()).decode()


def decrypt_data(encrypted_data, key):
    fernet = Fernet(key)
    if isinstance(encrypted_data, str):
        encrypted_data = encrypted_data.encode()
    decrypted_data = fernet.decrypt(encrypted_data)
    return decrypted_data.decode()


def account_password(config):
    """Decrypt Account_Password; empty string when no password is configured."""
    token = (config.get("Account_Password") or "").strip()
    if not token:
        return ""
    key = resolve_key(config)
    if not key:
        raise ValueError(f"Account_Password is set but no Secret_Key / {SECRET_KEY_ENV} is available")
    try:
        return decrypt_data(token, key)
    except (InvalidToken, ValueError) as e:
        raise ValueError(f"Failed to decrypt Account_Password: {str(e) or 'invalid token'}") from e
