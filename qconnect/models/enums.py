import enum


class Role(str, enum.Enum):
    admin = "admin"
    patient = "patient"
    doctor = "doctor"
