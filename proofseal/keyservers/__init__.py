"""
Key servers for the threshold network.
Each connector implements communication with one key server.
"""

from proofseal.keyservers.base import KeyRequest, KeyResponse, KeyServer
from proofseal.keyservers.http import HttpKeyServer
from proofseal.keyservers.local import LocalKeyServer

__all__ = [
    "KeyRequest",
    "KeyResponse",
    "KeyServer",
    "HttpKeyServer",
    "LocalKeyServer",
]
