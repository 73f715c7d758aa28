"""
Modal visibility as an explicit state value with pure reducers.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import FrozenSet, Literal


class ModalType(str, Enum):
    BEGIN = "begin-modal"
    SAFETY_NOTE = "safety-note-modal"
    AUTH = "auth-modal"
    MAIL_CONFIRM = "mail-confirm-modal"
    FOLDER = "folder-modal"
    ADD_SESSIONS_TO_FOLDER = "add-sessions-to-folder-modal"


AuthMode = Literal["signin", "signup"]


@dataclass(frozen=True)
class ModalState:
    open_modals: FrozenSet[ModalType] = field(default_factory=frozenset)
    auth_mode: AuthMode = "signup"

    def is_open(self, modal: ModalType) -> bool:
        return modal in self.open_modals


def open_modal(state: ModalState, modal: ModalType) -> ModalState:
    return replace(state, open_modals=state.open_modals | {modal})


def close_modal(state: ModalState, modal: ModalType) -> ModalState:
    return replace(state, open_modals=state.open_modals - {modal})


def set_auth_mode(state: ModalState, mode: AuthMode) -> ModalState:
    return replace(state, auth_mode=mode)
