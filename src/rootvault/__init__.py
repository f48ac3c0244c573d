"""
rootvault -- encrypted, versioned file roots over content-addressed storage.

Every owner gets an index of their files. Every file is encrypted for
that owner. The index itself is an immutable blob, and one pointer on
a ledger names the current one.

Upload first. Commit the pointer second. Retire the old root last.
"""

import os

__version__ = "0.1.0"

ROOTVAULT_HOME = os.environ.get("ROOTVAULT_HOME", "~/.rootvault")
