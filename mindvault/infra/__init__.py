"""Infra layer utilities (key-value storage, credential rotation)."""

from .key_pool import CredentialPool, mask_credential
from .storage import CONFIG_KEY, DATA_KEY, KeyValueStore

__all__ = ["CONFIG_KEY", "CredentialPool", "DATA_KEY", "KeyValueStore", "mask_credential"]
