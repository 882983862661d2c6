from typing import Generator, Sequence, TypeVar

T = TypeVar("T")


def generate_batch(source_list: Sequence[T], batch_size: int = 50) -> Generator[Sequence[T], None, None]:
    for batch_start_index in range(0, len(source_list), batch_size):
        yield source_list[batch_start_index : batch_start_index + batch_size]
