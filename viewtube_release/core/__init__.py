"""Release pipeline internals: digest, keys, archives, signing, verification, update runs."""
