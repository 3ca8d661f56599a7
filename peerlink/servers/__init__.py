"""Reference peers. Run one with ``python -m peerlink.servers.<name>``."""
