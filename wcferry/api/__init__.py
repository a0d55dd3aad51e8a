"""
API-level models and protocol implementation.

This module contains models and types that belong to the API layer:
- WcfProtocol (implements the host commands)
- MessageReceiver (keeps host push state in line with local listeners)
- Message (what listeners receive)
- Polling policies for work the host completes out of band
- FileRef (stages images and files for the host)
- Types and enums used by the API layer
"""

from .models import Message
from .protocol import WcfProtocol
from .receiving import MessageReceiver
from .polling import PollPolicy, MembershipPoll, AudioPoll, OcrPoll, DecryptPoll
from .files import FileRef, StagedFile, acquire
from .types import ConnectionState, ReceivingState, DbFieldType, Const, parse_db_field

__all__ = [
    # API-level models
    "Message",
    "WcfProtocol",
    "MessageReceiver",

    # Polling
    "PollPolicy",
    "MembershipPoll",
    "AudioPoll",
    "OcrPoll",
    "DecryptPoll",

    # Files
    "FileRef",
    "StagedFile",
    "acquire",

    # API-level types
    "ConnectionState",
    "ReceivingState",
    "DbFieldType",
    "Const",
    "parse_db_field",
]
