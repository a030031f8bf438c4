"""
Request payload models for the record API.

Field names follow the JSON the kiosk and admin pages send (camelCase),
so every model accepts and ignores unknown keys such as ``action`` and
``token``.
"""

from typing import List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class CheckinPayload(_Payload):
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    date: str = ""
    time: str = ""
    class_name: str = Field("", alias="class")
    paid: Union[str, bool] = ""

    @field_validator("date", "time", "class_name", "paid", mode="before")
    @classmethod
    def _null_as_empty(cls, value):
        return "" if value is None else value


class NewStudentPayload(CheckinPayload):
    pass


class RecordDuesPayload(_Payload):
    firstName: str = Field(..., min_length=1)
    lastName: str = Field(..., min_length=1)
    month: Optional[str] = None
    date: Optional[str] = None


class AddStudentPayload(_Payload):
    first: str = Field(..., min_length=1)
    last: str = Field(..., min_length=1)


class RemoveStudentPayload(_Payload):
    name: str = ""


class EditStudentPayload(_Payload):
    oldName: Optional[str] = None
    newFirst: Optional[str] = None
    newLast: Optional[str] = None


class SaveAttendancePayload(_Payload):
    date: str = Field(..., min_length=1)
    names: List[str] = Field(default_factory=list)


class ClassDatePayload(_Payload):
    date: str = Field(..., min_length=1)


class ToggleDuesPayload(_Payload):
    name: Optional[str] = None
    month: Optional[str] = None
    paid: bool = False
    date: Optional[str] = None


class SetSettingPayload(_Payload):
    settingKey: Optional[str] = None
    settingValue: Optional[Union[str, int, float, bool]] = None
