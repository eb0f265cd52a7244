"""Request parsing: one validated model per write operation.

``parse_body`` is the single step that turns a raw JSON body into a typed
request, so views and services never dig through dictionaries for keys.
"""

from typing import Annotated, Optional

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationError

from progression_api.errors import MissingFields
from progression_api.models import UNKNOWN_ROUND_ID

INT32_MIN = -(2 ** 31)
INT32_MAX = 2 ** 31 - 1

# Display labels are trimmed; progress lists are opaque and stored as sent
Label = Annotated[str, StringConstraints(strip_whitespace=True)]
# Integer columns are 32-bit; JSON booleans and floats are rejected
Identifier = Annotated[int, Field(strict=True, ge=INT32_MIN, le=INT32_MAX)]
Counter = Annotated[int, Field(strict=True, ge=0, le=INT32_MAX)]


class RequestModel(BaseModel):
    # Game-server mods may send keys newer than this API knows about
    model_config = ConfigDict(extra='ignore')


class RoundCreate(RequestModel):
    server_name: Label
    gamemode: Label
    map: Label


class RoundFinalization(RequestModel):
    num_players: Counter
    winning_team_id: Identifier
    duration: float


class ProgressionSubmission(RequestModel):
    name: Optional[Label] = None
    round_id: Identifier = UNKNOWN_ROUND_ID
    team_id: Identifier
    squad_id: Identifier
    kills: Counter
    deaths: Counter
    total_level: Counter
    total_xp: Counter
    assault_level: Counter
    assault_xp: Counter
    engineer_level: Counter
    engineer_xp: Counter
    support_level: Counter
    support_xp: Counter
    recon_level: Counter
    recon_xp: Counter
    weapon_progression: str
    vehicle_progression: str


def parse_body(model, data):
    """Validate ``data`` against ``model`` or raise ``MissingFields``.

    Errors are split into keys that are absent, keys sent as ``null`` and
    keys whose value has the wrong shape.
    """
    if not isinstance(data, dict):
        raise MissingFields()
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        missing, null_values, invalid = [], [], []
        for error in exc.errors():
            key = str(error['loc'][0]) if error['loc'] else '__root__'
            if error['type'] == 'missing':
                missing.append(key)
            elif data.get(key) is None:
                null_values.append(key)
            else:
                invalid.append(key)
        raise MissingFields(missing=missing, null_values=null_values, invalid=invalid)


def int_arg(args, key, default, minimum=None, maximum=None):
    """Parse an integer query argument, falling back to ``default`` and clamping."""
    try:
        value = int(args.get(key, ''))
    except (TypeError, ValueError):
        value = default
    if minimum is not None:
        value = max(minimum, value)
    if maximum is not None:
        value = min(maximum, value)
    return value
