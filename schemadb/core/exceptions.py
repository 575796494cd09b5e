from typing import NoReturn


class DatabaseException(RuntimeError):
    def __init__(self, detail: str):
        self.detail = detail
        super().__init__(detail)


def database_error(detail: str) -> NoReturn:
    raise DatabaseException(detail)
