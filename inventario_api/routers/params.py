from typing import Annotated

from fastapi import Path

from inventario_api.schemas import MAX_INT, MIN_INT

PathId = Annotated[int, Path(ge=MIN_INT, le=MAX_INT)]
