"""
VIN / media validation and the v2 request schema
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from inspection_engine.core.exceptions import ValidationError
from inspection_engine.schemas.inspection import InspectionRequestV2
from inspection_engine.services.validation import (
    is_valid_vin,
    normalize_vin,
    validate_media_count,
    validate_vin,
)


@pytest.mark.parametrize(
    "vin",
    ["1HGBH41JXMN109186", "1hgbh41jxmn109186", " 1HGBH41JX MN109186 ", "WVWZZZ1JZXW000001"],
)
def test_valid_vins(vin: str) -> None:
    assert is_valid_vin(vin)
    assert validate_vin(vin) == normalize_vin(vin)


@pytest.mark.parametrize(
    "vin",
    [
        "",
        "1HGBH41JXMN10918",  # 16 chars
        "1HGBH41JXMN1091866",  # 18 chars
        "1HGBH41JXMN10918O",  # letter O
        "IHGBH41JXMN109186",  # letter I
        "1HGBH41JXMN10918Q",  # letter Q
        "1HGBH41JXMN10918-",
    ],
)
def test_invalid_vins(vin: str) -> None:
    assert not is_valid_vin(vin)
    with pytest.raises(ValidationError) as exc_info:
        validate_vin(vin)
    assert exc_info.value.details["field"] == "vin"
    assert exc_info.value.category == "validation"


def test_media_count_bounds() -> None:
    assert validate_media_count([1, 2, 3], minimum=3) == 3

    with pytest.raises(ValidationError, match="At least 3"):
        validate_media_count([1, 2], minimum=3)
    with pytest.raises(ValidationError, match="At most 2"):
        validate_media_count([1, 2, 3], maximum=2)


# ============================================================
# InspectionRequestV2
# ============================================================


def _request(**overrides) -> dict:
    body = {
        "vin": "1hgbh41jxmn109186",
        "media": [{"type": "image", "url": "https://cdn.example.test/1.jpg"}],
    }
    body.update(overrides)
    return body


def test_request_defaults_and_vin_normalization() -> None:
    request = InspectionRequestV2.model_validate(_request())

    assert request.vin == "1HGBH41JXMN109186"
    assert request.options.enable_streaming is False
    assert request.options.confidence_threshold == 0.7
    assert request.options.priority == "normal"
    assert request.shop_id is None


def test_request_accepts_camel_case_options() -> None:
    request = InspectionRequestV2.model_validate(
        _request(
            options={"enableStreaming": True, "partialResults": True, "priority": "high", "webhookUrl": "https://hook.test"},
            shopId="shop-7",
            metadata={"inspector": "R. Diaz", "customerInfo": {"email": "c@example.test"}},
        )
    )

    assert request.options.enable_streaming is True
    assert request.options.partial_results is True
    assert request.options.webhook_url == "https://hook.test"
    assert request.shop_id == "shop-7"
    assert request.metadata.customer_info.email == "c@example.test"


@pytest.mark.parametrize(
    "overrides",
    [
        {"vin": "1HGBH41JXMN10918O"},
        {"media": []},
        {"media": [{"type": "audio", "url": "https://cdn.example.test/a.mp3"}]},
        {"media": [{"type": "image", "url": ""}]},
        {"options": {"priority": "urgent"}},
        {"options": {"confidenceThreshold": 1.2}},
    ],
)
def test_request_rejects_invalid_input(overrides: dict) -> None:
    with pytest.raises(PydanticValidationError):
        InspectionRequestV2.model_validate(_request(**overrides))


def test_request_rejects_more_than_fifty_media() -> None:
    media = [{"type": "image", "url": f"https://cdn.example.test/{i}.jpg"} for i in range(51)]

    with pytest.raises(PydanticValidationError):
        InspectionRequestV2.model_validate(_request(media=media))
