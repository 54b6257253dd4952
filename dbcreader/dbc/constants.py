"""DBC format constants, type-tag bits, and magic numbers."""

# File header: magic(4) + record_count(4) + field_count(4) + record_size(4) + string_block_size(4)
MAGIC = b"WDBC"
HEADER_SIZE = 20

# Every scalar field slot is a 32-bit little-endian value
FIELD_SIZE = 4

# Locale-variant copies stored after each localized string field
LOCALIZATION = 16

# Legacy bit-encoded field rules: low byte = repeat count, higher bits = type tag
COUNT_MASK = 0x00FF
UINT_MASK = 0x0100
INT_MASK = 0x0200
FLOAT_MASK = 0x0400
STRING_MASK = 0x0800
STRING_LOC_MASK = 0x1000

# struct format codes per field unit
UINT_CODE = "I"
INT_CODE = "i"
FLOAT_CODE = "f"
