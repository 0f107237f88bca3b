"""Load or wipe the initial clubs.

    python seed.py -i   # replace all clubs with the three defaults
    python seed.py -d   # delete all clubs
"""

import logging
import sys

from config import load_settings
from container import Container, build_container
from schemas import Club

logger = logging.getLogger("seed")

INITIAL_CLUBS = [
    {
        "type": "Technical",
        "description": "For students interested in programming, coding challenges, and tech projects",
    },
    {
        "type": "Cultural",
        "description": "For students interested in dance, music, art, and cultural performances",
    },
    {
        "type": "Sports",
        "description": "For students interested in sports, fitness, and athletic activities",
    },
]


def delete_data(container: Container) -> int:
    removed = 0
    for club in container.clubs_repo.list_all():
        if container.clubs_repo.delete(club["type"]):
            removed += 1
    return removed


def import_data(container: Container) -> int:
    delete_data(container)
    for club in INITIAL_CLUBS:
        container.clubs_repo.create(Club(**club).model_dump())
    return len(INITIAL_CLUBS)


def main(argv) -> int:
    settings = load_settings()
    logging.basicConfig(level=settings.log_level)
    if len(argv) < 2 or argv[1] not in ("-i", "-d"):
        print("Please use -i (import) or -d (delete) as arguments")
        return 0

    container = build_container(settings)
    container.prepare()
    if argv[1] == "-i":
        count = import_data(container)
        logger.info("Data imported successfully (%d clubs)", count)
    else:
        count = delete_data(container)
        logger.info("Data deleted successfully (%d clubs)", count)
    return 0


if __name__ == "__main__":
    sys.exit(main(sys.argv))
