"""Connector package - Where commands run and files live.

SSHConnector drives a remote host; LocalConnector drives this machine.
Both expose run / read_file / write_file / file_exists / dir_exists.
"""

from svp.connector.local import LocalConnector
from svp.connector.ssh import CommandResult, SSHConfig, SSHConnector

Connector = SSHConnector | LocalConnector

__all__ = ["CommandResult", "Connector", "LocalConnector", "SSHConfig", "SSHConnector"]
