"""FRCCalc web route modules.

Each module exports a `router` object (APIRouter instance) that
frccalc.web.app includes.
"""
