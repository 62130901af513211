import logging
from typing import Any

from pydantic import BaseModel

logger = logging.getLogger(__name__)

_SIMPLE_DEFAULTS = {dict: dict, str: str, bool: bool, int: int, float: float}


class CustomBaseModel(BaseModel):
    """Custom base model for response schemas.
    - pre-process the data before init
    - coerce simple typed fields, fall back to the field default if the value is invalid
    """

    def __init__(self, **data: Any) -> None:
        fields = self.__class__.model_fields
        for attr, value in data.items():
            field = fields.get(attr)
            if field is None:
                continue
            attr_type = field.annotation
            # process simple type
            if attr_type in _SIMPLE_DEFAULTS:
                try:  # try to convert the value to the type of the attribute
                    data[attr] = attr_type(value)
                except Exception:
                    logger.warning("invalid value for key %s, using default", attr)
                    if field.is_required():
                        data[attr] = _SIMPLE_DEFAULTS[attr_type]()
                    else:
                        data[attr] = field.get_default(call_default_factory=True)
        super().__init__(**data)
