import pytest

from xml_gateway import ValidationError, validate_header


def test_complete_header_passes():
    validate_header({"SessionID": "s1", "ServiceName": "svc", "RequestTime": "t1", "Extra": ""})


def test_all_missing_fields_are_reported_together():
    with pytest.raises(ValidationError) as excinfo:
        validate_header({"SessionID": "", "RequestTime": None})
    assert excinfo.value.missing_fields == ["SessionID", "ServiceName", "RequestTime"]
    assert str(excinfo.value) == "Missing required header fields: SessionID, ServiceName, RequestTime"


def test_falsy_values_are_missing():
    with pytest.raises(ValidationError) as excinfo:
        validate_header({"SessionID": 0, "ServiceName": False, "RequestTime": "t1"})
    assert excinfo.value.missing_fields == ["SessionID", "ServiceName"]


def test_single_missing_field():
    with pytest.raises(ValidationError, match="Missing required header fields: ServiceName$"):
        validate_header({"SessionID": "s1", "RequestTime": "t1"})


@pytest.mark.parametrize("header", [None, "s1", ["SessionID"]])
def test_non_mapping_header_misses_everything(header):
    with pytest.raises(ValidationError) as excinfo:
        validate_header(header)
    assert len(excinfo.value.missing_fields) == 3
