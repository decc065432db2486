# labflow/domains/lims/hl7.py

"""
장비 결과 전달용 HL7 v2.3 유사 메시지(ORU^R01) 인코더/디코더입니다.

세그먼트 순서는 MSH, PID, OBR, OBX* 로 고정되며 '\\r'로 연결합니다.
필드 구분자는 '|', 컴포넌트 구분자는 '^' 입니다. 값 안의 구분자는 이스케이프하지 않습니다.

    MSH|^~\\&|{송신앱}|{송신기관}|{수신앱}|{수신기관}|{YYYYMMDDHHMMSS}||ORU^R01|{메시지ID}|P|2.3
    PID|1||{대상자코드}||{이름}||{YYYYMMDD}|{M|F|U}
    OBR|1||{바코드}|||{YYYYMMDDHHMMSS}|||{오더번호}|||{장비코드}
    OBX|{순번}|NM|{코드}^{코드}^L||{값}|{단위}|{기준범위}|{H|L|N}||||F||{YYYYMMDDHHMMSS}

디코딩은 python-hl7(hl7.parse)로 세그먼트와 필드를 나눕니다. 줄바꿈('\\n')도 세그먼트 구분자로 받고,
뒤쪽 선택 필드가 없어도 허용하며, 잘못된 OBX 세그먼트 하나 때문에 메시지 전체를
실패시키지 않고 해당 세그먼트를 건너뛴 뒤 skipped 목록으로 보고합니다.
"""

import random
from datetime import date, datetime, UTC
from typing import Any, List, Optional

import hl7 as python_hl7
from pydantic import BaseModel, Field as PydanticField

SEGMENT_SEPARATOR = "\r"
FIELD_SEPARATOR = "|"
COMPONENT_SEPARATOR = "^"
ENCODING_CHARACTERS = "^~\\&"
MESSAGE_TYPE = "ORU^R01"
HL7_VERSION = "2.3"

TIMESTAMP_FORMAT = "%Y%m%d%H%M%S"
DATE_FORMAT = "%Y%m%d"

_SEX_CODES = {"male": "M", "female": "F"}
_SEX_NAMES = {"M": "male", "F": "female"}


class MessageHeader(BaseModel):
    sending_application: str = "Instrument"
    sending_facility: str = "LabFlow"
    receiving_application: str = "Lab"
    receiving_facility: str = "Lab"
    timestamp: Optional[datetime] = None
    message_id: Optional[str] = None
    message_type: str = MESSAGE_TYPE


class PatientSegment(BaseModel):
    patient_code: str = ""
    full_name: str = ""
    date_of_birth: Optional[Any] = None  # date 또는 문자열 (잘못된 값은 빈 필드로 인코딩)
    gender: Optional[str] = None


class OrderSegment(BaseModel):
    barcode: str
    order_number: str = ""
    instrument_code: str = ""
    observed_at: Optional[datetime] = None


class Observation(BaseModel):
    set_id: int = 0
    code: str
    value: float
    unit: str = ""
    reference_range: str = ""
    flag: str = "N"
    observed_at: Optional[datetime] = None


class SkippedSegment(BaseModel):
    index: int
    raw: str
    reason: str


class DecodedMessage(BaseModel):
    message_type: str = ""
    message_id: str = ""
    timestamp: Optional[datetime] = None
    patient: Optional[PatientSegment] = None
    barcode: Optional[str] = None
    order_number: Optional[str] = None
    instrument_code: Optional[str] = None
    observations: List[Observation] = PydanticField(default_factory=list)
    skipped: List[SkippedSegment] = PydanticField(default_factory=list)


# =============================================================================
# 날짜 / 숫자 포맷
# =============================================================================
def format_timestamp(value: Optional[datetime]) -> str:
    return (value or datetime.now(UTC)).strftime(TIMESTAMP_FORMAT)


def format_birth_date(value: Any) -> str:
    """생년월일을 YYYYMMDD로 변환합니다. 해석할 수 없는 값은 빈 문자열."""
    if value is None or value == "":
        return ""
    if isinstance(value, datetime):
        return value.strftime(DATE_FORMAT)
    if isinstance(value, date):
        return value.strftime(DATE_FORMAT)
    try:
        return date.fromisoformat(str(value)[:10]).strftime(DATE_FORMAT)
    except ValueError:
        return ""


def parse_timestamp(value: str) -> Optional[datetime]:
    value = (value or "").strip()
    for fmt, length in ((TIMESTAMP_FORMAT, 14), (DATE_FORMAT, 8)):
        if len(value) >= length:
            try:
                return datetime.strptime(value[:length], fmt).replace(tzinfo=UTC)
            except ValueError:
                continue
    return None


def parse_birth_date(value: str) -> Optional[date]:
    parsed = parse_timestamp(value)
    return parsed.date() if parsed else None


def format_value(value: float) -> str:
    number = float(value)
    if number.is_integer():
        return str(int(number))
    return repr(number)


def build_message_id(now: Optional[datetime] = None) -> str:
    return f"MSG{format_timestamp(now)}{random.randint(0, 999):03d}"


# =============================================================================
# 인코딩
# =============================================================================
def _segment(*fields: Any) -> str:
    return FIELD_SEPARATOR.join("" if f is None else str(f) for f in fields)


def encode_oru(
    header: MessageHeader,
    patient: Optional[PatientSegment],
    order: OrderSegment,
    observations: List[Observation],
) -> str:
    timestamp = header.timestamp or datetime.now(UTC)
    stamp = format_timestamp(timestamp)
    segments = [
        _segment(
            "MSH", ENCODING_CHARACTERS,
            header.sending_application, header.sending_facility,
            header.receiving_application, header.receiving_facility,
            stamp, "", header.message_type, header.message_id or build_message_id(timestamp), "P", HL7_VERSION,
        )
    ]

    patient = patient or PatientSegment()
    segments.append(_segment(
        "PID", "1", "", patient.patient_code, "", patient.full_name, "",
        format_birth_date(patient.date_of_birth), _SEX_CODES.get(patient.gender or "", "U"),
    ))

    segments.append(_segment(
        "OBR", "1", "", order.barcode, "", "", format_timestamp(order.observed_at or timestamp),
        "", "", order.order_number, "", "", order.instrument_code,
    ))

    for index, obs in enumerate(observations, start=1):
        segments.append(_segment(
            "OBX", obs.set_id or index, "NM",
            COMPONENT_SEPARATOR.join([obs.code, obs.code, "L"]), "",
            format_value(obs.value), obs.unit, obs.reference_range, obs.flag or "N",
            "", "", "", "F", "", format_timestamp(obs.observed_at or timestamp),
        ))

    return SEGMENT_SEPARATOR.join(segments)


# =============================================================================
# 디코딩
# =============================================================================
def _field(segment: Any, index: int) -> str:
    """파싱된 세그먼트의 필드를 문자열로 반환합니다. 뒤쪽 선택 필드가 없으면 빈 문자열."""
    return str(segment[index]) if index < len(segment) else ""


def _decode_observation(segment: Any) -> Observation:
    code = _field(segment, 3).split(COMPONENT_SEPARATOR)[0].strip()
    if not code:
        raise ValueError("missing observation identifier")
    raw_value = _field(segment, 5).strip()
    if not raw_value:
        raise ValueError("missing observation value")
    try:
        value = float(raw_value)
    except ValueError:
        raise ValueError(f"non-numeric observation value '{raw_value}'")
    set_id = _field(segment, 1).strip()
    return Observation(
        set_id=int(set_id) if set_id.isdigit() else 0,
        code=code,
        value=value,
        unit=_field(segment, 6),
        reference_range=_field(segment, 7),
        flag=_field(segment, 8) or "N",
        observed_at=parse_timestamp(_field(segment, 14)),
    )


def decode(text: str) -> DecodedMessage:
    decoded = DecodedMessage()
    normalized = (text or "").replace("\r\n", SEGMENT_SEPARATOR).replace("\n", SEGMENT_SEPARATOR)
    lines = [line.strip() for line in normalized.split(SEGMENT_SEPARATOR) if line.strip()]
    if not lines:
        return decoded

    # 구분자는 MSH 헤더에서 읽으므로 헤더가 없는 메시지에는 기본 헤더를 붙여 파싱합니다.
    offset = 0
    if not lines[0].startswith("MSH" + FIELD_SEPARATOR):
        lines.insert(0, f"MSH{FIELD_SEPARATOR}{ENCODING_CHARACTERS}{FIELD_SEPARATOR}")
        offset = 1
    try:
        message = python_hl7.parse(SEGMENT_SEPARATOR.join(lines))
    except python_hl7.ParseException as e:
        decoded.skipped.append(SkippedSegment(index=0, raw=lines[offset], reason=f"unparseable message: {e}"))
        return decoded

    for position, segment in enumerate(message):
        if position < offset:
            continue
        index, raw = position - offset, lines[position]
        kind = _field(segment, 0).strip()

        if kind == "MSH":
            # python-hl7은 MSH-1(필드 구분자)을 segment[1]에 두므로 필드 번호가 그대로 인덱스입니다.
            decoded.timestamp = parse_timestamp(_field(segment, 7))
            decoded.message_type = _field(segment, 9)
            decoded.message_id = _field(segment, 10)
        elif kind == "PID":
            decoded.patient = PatientSegment(
                patient_code=_field(segment, 3) or _field(segment, 2),
                full_name=_field(segment, 5),
                date_of_birth=parse_birth_date(_field(segment, 7)),
                gender=_SEX_NAMES.get(_field(segment, 8).strip().upper()),
            )
        elif kind == "OBR":
            decoded.barcode = _field(segment, 3) or None
            decoded.order_number = _field(segment, 9) or None
            decoded.instrument_code = _field(segment, 12) or None
        elif kind == "OBX":
            try:
                decoded.observations.append(_decode_observation(segment))
            except ValueError as e:
                decoded.skipped.append(SkippedSegment(index=index, raw=raw, reason=str(e)))
        else:
            decoded.skipped.append(SkippedSegment(index=index, raw=raw, reason=f"unknown segment '{kind}'"))

    return decoded
