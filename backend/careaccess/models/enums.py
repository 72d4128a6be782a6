import enum


class ContextType(str, enum.Enum):
    SYSTEM = "SYSTEM"
    ORGANIZATION = "ORGANIZATION"
