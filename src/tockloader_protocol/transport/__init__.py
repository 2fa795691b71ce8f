"""Transport layer: byte-stream connections to the bootloader."""
