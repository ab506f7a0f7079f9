import re

# v1 to v5 UUIDs, upper or lower case
UUID_PATTERN = re.compile(
    r"[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}"
)


def get_uuids_from_uri(uri: str) -> list[str]:
    return UUID_PATTERN.findall(uri or "")
