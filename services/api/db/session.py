"""
FastAPI dependency for the MongoDB database handle.

The client is created once in the lifespan; routes get the database object
and build whichever repositories they need.
"""

from fastapi import HTTPException, Request


async def get_db(request: Request):
    """
    FastAPI dependency -- returns app.state.mongo_db, or 503 when MongoDB was
    not configured or failed to initialise.
    """
    db = getattr(request.app.state, "mongo_db", None)
    if db is None:
        raise HTTPException(
            status_code=503,
            detail={"message": "Database unavailable"},
        )
    return db
