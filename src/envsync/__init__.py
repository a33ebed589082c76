"""
EnvSync — end-to-end encrypted environment variables.

The server stores ciphertext and wrapped keys. Plaintext values and
private keys never leave the member's machine.
"""

import os

__version__ = "0.1.0"

ENVSYNC_HOME = os.environ.get("ENVSYNC_HOME", "~/.envsync")
