import cv2
import numpy as np
import pytest

from sheet_to_notes.models.settings_models import ProcessingParameters

STAFF_ROWS = (20, 40, 60, 80, 100)
BARLINE_COLUMNS = (50, 150, 250, 350)
# (x, y) centers of one note head per measure: on the middle line, in the
# top space and in the bottom space
NOTE_CENTERS = ((100, 60), (200, 30), (300, 90))


def draw_staff(image, rows=STAFF_ROWS, color=0):
    for y in rows:
        cv2.line(image, (0, y), (image.shape[1] - 1, y), color, 1)
    return image


@pytest.fixture
def params():
    return ProcessingParameters()


@pytest.fixture
def staff_strip():
    # 120×400 white strip with five 1px black staff lines 20px apart
    return draw_staff(np.full((120, 400), 255, dtype=np.uint8))


@pytest.fixture
def staff_binary():
    # Same staff already binarized (ink = 255)
    return draw_staff(np.zeros((120, 400), dtype=np.uint8), color=255)


@pytest.fixture
def barline_strip():
    # 200×400 white strip with 2px black vertical lines away from the border
    image = np.full((200, 400), 255, dtype=np.uint8)
    for x in BARLINE_COLUMNS:
        cv2.rectangle(image, (x, 0), (x + 1, 199), 0, -1)
    return image


@pytest.fixture
def blob_mask():
    # Three round blobs (area ≈ 50 px²) and one 2×100 bar (aspect 0.02)
    mask = np.zeros((120, 200), dtype=np.uint8)
    for cx in (130, 30, 80):
        cv2.circle(mask, (cx, 50), 4, 255, -1)
    cv2.rectangle(mask, (180, 10), (181, 109), 255, -1)
    return mask


@pytest.fixture
def section_strip():
    # 140×420 BGR strip: staff, four barlines spanning the staff and one
    # filled note head per measure
    image = draw_staff(np.full((140, 420), 255, dtype=np.uint8))
    for x in BARLINE_COLUMNS:
        cv2.rectangle(image, (x, STAFF_ROWS[0]), (x + 1, STAFF_ROWS[-1]), 0, -1)
    for center in NOTE_CENTERS:
        cv2.circle(image, center, 5, 0, -1)
    return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)


@pytest.fixture
def reference_lines():
    return [20, 30, 40, 50, 60, 70, 80, 90, 100]


@pytest.fixture
def make_staff():
    # Binary staff with ink on the given rows
    def make(rows, height=120, width=400):
        return draw_staff(np.zeros((height, width), dtype=np.uint8), rows, 255)

    return make
