from .listing import (
    generate_segment_list,
    map_fnumbers_to_segments,
    normalize_path,
    parse_vpk_dir,
    write_segment_list,
)

__all__ = [
    "generate_segment_list",
    "map_fnumbers_to_segments",
    "normalize_path",
    "parse_vpk_dir",
    "write_segment_list",
]
