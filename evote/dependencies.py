"""
FastAPI dependencies for process-wide resources.

The lifespan in ``evote.app`` puts the settings, store, mailer and vote
caster on ``app.state``; handlers receive them through these functions.
"""
from fastapi import Request

from .config import Settings
from .email_util import Mailer
from .voting import VoteCaster


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_store(request: Request):
    return request.app.state.store


def get_mailer(request: Request) -> Mailer:
    return request.app.state.mailer


def get_vote_caster(request: Request) -> VoteCaster:
    return request.app.state.vote_caster
