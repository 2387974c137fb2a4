"""Remote Operations Map (ROM) resolution on top of the fetch layer."""

from src.rom.models import RomAction, RomContext, RomOperation, RomQueryParam
from src.rom.resolver import RomResolver, build_query_string, join_url_segment


__all__ = [
    "RomAction",
    "RomContext",
    "RomOperation",
    "RomQueryParam",
    "RomResolver",
    "build_query_string",
    "join_url_segment",
]
