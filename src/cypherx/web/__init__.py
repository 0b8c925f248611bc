"""HTTP boundary: pydantic contracts and FastAPI controllers."""
