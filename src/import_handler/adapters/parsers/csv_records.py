"""Record-at-a-time CSV reading."""

import csv
from typing import Iterator, TypeVar, Union

Row = TypeVar("Row")


def read_records(reader: Iterator[Row]) -> Iterator[Union[Row, csv.Error]]:
    """Yield each record, or the error for a record the csv module rejects.

    A rejected record (oversized field, NUL byte) is handed back as its
    ``csv.Error`` so the caller can count it and keep reading.
    """
    while True:
        try:
            row = next(reader)
        except StopIteration:
            return
        except csv.Error as e:
            yield e
            continue
        yield row
