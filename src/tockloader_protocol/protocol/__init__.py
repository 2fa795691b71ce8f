"""Protocol layer: escape framing, command types and builders, stream parsing."""

from .framing import ESCAPE, PAGE_SIZE, build_frame, escape_bytes
from .commands import Command, CommandCode, build_command, encode
from .parser import StreamParser, parse_stream
