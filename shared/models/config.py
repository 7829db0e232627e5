from pydantic import BaseModel


class EnvConfig(BaseModel):
    """
    Represents a single configuration parameter a client reads from the environment.

    Attributes:
        env_key (str): The raw key without client prefix, e.g. "ROOT_FOLDER_ID" for "STORE_DRIVE_ROOT_FOLDER_ID".
        val_type (str): The expected value type. Supported types are "string", "number", "bool", and "list".
        default (str | int | float | bool | list | None): Default if unset. None marks the key as required.
    """

    env_key: str
    val_type: str
    default: str | int | float | bool | list | None = None
