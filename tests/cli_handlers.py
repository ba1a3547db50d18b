"""Handlers loaded by import path in test_cli."""

from __future__ import annotations

HANDLED: list[str] = []


def send_email(message, queue):
    HANDLED.append(message.payload["to"])


def explode(message, queue):
    raise RuntimeError("cannot send")


HANDLERS = {"send-email": send_email, "explode": explode}


def build_handlers():
    return dict(HANDLERS)
