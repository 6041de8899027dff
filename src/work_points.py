"""
Work point ("anchor") storage in DXF drawings.

A work point can live in two places:
  - XDATA of a profile entity, application ``WORKPOINT``, group code 1011
  - the named object dictionary ``WORKPOINTS`` with an xrecord ``PRIMARY``
    holding three reals (x, y, z)

Marker geometry is drawn on the ``WORKPOINTS`` layer, which the profile
loader ignores.
"""
import logging
from typing import Optional, Sequence

import numpy as np

logger = logging.getLogger(__name__)

WORKPOINT_APPID = "WORKPOINT"
WORKPOINT_DICT = "WORKPOINTS"
WORKPOINT_RECORD = "PRIMARY"
WORKPOINT_LAYER = "WORKPOINTS"

XDATA_WORLD_POINT = 1011
XRECORD_REAL = 40


def get_entity_work_point(entity) -> Optional[np.ndarray]:
    """Read a work point from an entity's XDATA, if present."""
    if not entity.has_xdata(WORKPOINT_APPID):
        return None
    for tag in entity.get_xdata(WORKPOINT_APPID):
        if tag.code == XDATA_WORLD_POINT:
            return np.array(tuple(tag.value)[:3], dtype=float)
    return None


def set_entity_work_point(doc, entity, point: Sequence[float]) -> None:
    """Attach ``point`` to ``entity`` as WORKPOINT XDATA."""
    if WORKPOINT_APPID not in doc.appids:
        doc.appids.add(WORKPOINT_APPID)
    x, y, z = (float(v) for v in point)
    entity.set_xdata(WORKPOINT_APPID, [(XDATA_WORLD_POINT, (x, y, z))])


def get_drawing_work_point(doc) -> Optional[np.ndarray]:
    """Read the primary work point from the named object dictionary."""
    wp_dict = doc.rootdict.get(WORKPOINT_DICT)
    if wp_dict is None:
        return None
    xrec = wp_dict.get(WORKPOINT_RECORD)
    if xrec is None:
        return None
    values = [float(tag.value) for tag in xrec.tags if tag.code == XRECORD_REAL]
    if len(values) < 3:
        logger.warning("Work point record has %d values, expected 3", len(values))
        return None
    return np.array(values[:3], dtype=float)


def store_drawing_work_point(doc, point: Sequence[float]) -> None:
    """Create or replace the primary work point record."""
    wp_dict = doc.rootdict.get_required_dict(WORKPOINT_DICT)
    if WORKPOINT_RECORD in wp_dict:
        wp_dict.remove(WORKPOINT_RECORD)
    xrec = wp_dict.add_xrecord(WORKPOINT_RECORD)
    xrec.extend([(XRECORD_REAL, float(v)) for v in point])


def add_work_point_marker(doc, point: Sequence[float], size: float = 0.25) -> None:
    """Draw a 3-axis crosshair at ``point`` on the WORKPOINTS layer."""
    if WORKPOINT_LAYER not in doc.layers:
        doc.layers.add(WORKPOINT_LAYER, color=2)
    msp = doc.modelspace()
    p = np.asarray(point, dtype=float)
    for axis in np.eye(3):
        start = tuple(p - axis * size)
        end = tuple(p + axis * size)
        msp.add_line(start, end, dxfattribs={"layer": WORKPOINT_LAYER})
