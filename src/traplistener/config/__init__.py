from typing import Optional

from tomllib import TOMLDecodeError, load

from .models import (
    Configuration,
    DecodeConfiguration,
    DispatchConfiguration,
    ReadErrorPolicy,
)

__all__ = [
    "Configuration",
    "DecodeConfiguration",
    "DispatchConfiguration",
    "InvalidConfigurationError",
    "ReadErrorPolicy",
    "default_configuration",
    "read_configuration",
]


class InvalidConfigurationError(Exception):
    """The configuration file is invalid toml"""


def default_configuration() -> Configuration:
    """Returns a new configuration object populated with the default values.

    Every call returns a separate object, so one listener's configuration can never leak into another's.
    """
    return Configuration()


def read_configuration(config_file_name: Optional[str] = None, address: Optional[str] = None) -> Configuration:
    """
    Reads and validates config toml file

    Returns configuration if file name is given and file exists, returns a
    configuration with the default values if no file name is given

    Raises InvalidConfigurationError if toml file is invalid,
    OSError if the config toml file could not be found and
    pydantic.ValidationError if values in it are invalid
    """
    if not config_file_name:
        config_dict = {}
    else:
        with open(config_file_name, mode="rb") as cf:
            try:
                config_dict = load(cf)
            except TOMLDecodeError:
                raise InvalidConfigurationError

    # A listen address given on the command line overrides the config file entry
    if address:
        config_dict["address"] = address

    config = Configuration.model_validate(obj=config_dict, strict=True)

    return config
