import re

from services.naming_service import generate_device_id, generate_event_id, generate_room_code


def test_room_code_is_six_uppercase_letters():
    assert re.fullmatch(r"[A-Z]{6}", generate_room_code())


def test_device_and_event_ids_embed_timestamp():
    assert re.fullmatch(r"device_1234_[0-9a-f]{9}", generate_device_id(1234))
    assert re.fullmatch(r"sync_1234_[0-9a-f]{9}", generate_event_id(1234))
    assert generate_event_id(1234) != generate_event_id(1234)
