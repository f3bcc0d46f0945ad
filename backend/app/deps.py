from fastapi import Request

from .db import Database


def get_db(request: Request) -> Database:
    # Built in the startup hook (see main.py); handlers never touch a global pool.
    return request.app.state.db
