"""EventDesk models package.

Defines the shared data contracts used across the key lifecycle, event service
and HTTP layer:

  - environment.py — Environment enum (development vs production behaviour)
  - keys.py        — AccessKey, KeyStatus, NewAccessKey
  - event.py       — Event, SportCategory, EventDraft
  - result.py      — Ok / Err tagged operation results + ErrorKind

These models are the single source of truth for data crossing module seams.
"""
