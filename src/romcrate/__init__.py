"""romcrate - rebuild game ROM sets by content checksum.

Locates the ROMs a game needs inside an unordered collection of zip
archives, matching by CRC-32 rather than by file name, and copies the
compressed payloads byte-for-byte into a freshly named archive.
"""

__version__ = "0.1.0"
