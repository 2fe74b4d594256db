"""Pure functions: re-encoding, tag normalization, filename and MIME handling."""
