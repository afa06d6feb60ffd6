"""Static region tables and the region enumerator.

Regions are the top-level provinces every source partitions its work by.
The tables are immutable data; adapters receive them through the source
descriptors built in ``sources.py``.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Mapping

from .models import AdapterKind, SourceDescriptor, SubRegion

NATIONWIDE = "전국"

PROVINCES: tuple[str, ...] = (
    "서울",
    "부산",
    "대구",
    "인천",
    "광주",
    "대전",
    "울산",
    "세종",
    "경기",
    "강원",
    "충북",
    "충남",
    "전북",
    "전남",
    "경북",
    "경남",
    "제주",
)

# Statistical province codes, shared by the kindergarten and university registries.
PROVINCE_CODES: tuple[tuple[str, str], ...] = tuple(
    zip(
        PROVINCES,
        ("11", "26", "27", "28", "29", "30", "31", "36", "41", "42", "43", "44", "45", "46", "47", "48", "50"),
    )
)

# Education office codes of the school registry.
EDUCATION_OFFICE_CODES: tuple[tuple[str, str], ...] = tuple(
    zip(
        PROVINCES,
        ("B10", "C10", "D10", "E10", "F10", "G10", "H10", "I10", "J10", "K10", "M10", "N10", "P10", "Q10", "R10", "S10", "T10"),
    )
)

# The address book is searched by free-text keyword.
SEARCH_KEYWORDS: tuple[tuple[str, str], ...] = tuple((name, name) for name in PROVINCES)

# Spellings of each province found in free-text address fields.
REGION_ALIASES: Mapping[str, tuple[str, ...]] = MappingProxyType(
    {
        "서울": ("서울",),
        "부산": ("부산",),
        "대구": ("대구",),
        "인천": ("인천",),
        "광주": ("광주",),
        "대전": ("대전",),
        "울산": ("울산",),
        "세종": ("세종",),
        "경기": ("경기",),
        "강원": ("강원",),
        "충북": ("충북", "충청북도"),
        "충남": ("충남", "충청남도"),
        "전북": ("전북", "전라북도"),
        "전남": ("전남", "전라남도"),
        "경북": ("경북", "경상북도"),
        "경남": ("경남", "경상남도"),
        "제주": ("제주",),
    }
)

DISTRICTS: Mapping[str, tuple[SubRegion, ...]] = MappingProxyType(
    {
    # Seoul
    "11": (
        SubRegion("11110", "종로구"),
        SubRegion("11140", "중구"),
        SubRegion("11170", "용산구"),
        SubRegion("11200", "성동구"),
        SubRegion("11215", "광진구"),
        SubRegion("11230", "동대문구"),
        SubRegion("11260", "중랑구"),
        SubRegion("11290", "성북구"),
        SubRegion("11305", "강북구"),
        SubRegion("11320", "도봉구"),
        SubRegion("11350", "노원구"),
        SubRegion("11380", "은평구"),
        SubRegion("11410", "서대문구"),
        SubRegion("11440", "마포구"),
        SubRegion("11470", "양천구"),
        SubRegion("11500", "강서구"),
        SubRegion("11530", "구로구"),
        SubRegion("11545", "금천구"),
        SubRegion("11560", "영등포구"),
        SubRegion("11590", "동작구"),
        SubRegion("11620", "관악구"),
        SubRegion("11650", "서초구"),
        SubRegion("11680", "강남구"),
        SubRegion("11710", "송파구"),
        SubRegion("11740", "강동구"),
    ),
    # Busan
    "26": (
        SubRegion("26110", "중구"),
        SubRegion("26140", "서구"),
        SubRegion("26170", "동구"),
        SubRegion("26200", "영도구"),
        SubRegion("26230", "부산진구"),
        SubRegion("26260", "동래구"),
        SubRegion("26290", "남구"),
        SubRegion("26320", "북구"),
        SubRegion("26350", "해운대구"),
        SubRegion("26380", "사하구"),
        SubRegion("26410", "금정구"),
        SubRegion("26440", "강서구"),
        SubRegion("26470", "연제구"),
        SubRegion("26500", "수영구"),
        SubRegion("26530", "사상구"),
        SubRegion("26710", "기장군"),
    ),
    # Daegu
    "27": (
        SubRegion("27110", "중구"),
        SubRegion("27140", "동구"),
        SubRegion("27170", "서구"),
        SubRegion("27200", "남구"),
        SubRegion("27230", "북구"),
        SubRegion("27260", "수성구"),
        SubRegion("27290", "달서구"),
        SubRegion("27710", "달성군"),
        SubRegion("27720", "군위군"),
    ),
    # Incheon
    "28": (
        SubRegion("28110", "중구"),
        SubRegion("28140", "동구"),
        SubRegion("28177", "미추홀구"),
        SubRegion("28185", "연수구"),
        SubRegion("28200", "남동구"),
        SubRegion("28237", "부평구"),
        SubRegion("28245", "계양구"),
        SubRegion("28260", "서구"),
        SubRegion("28710", "강화군"),
        SubRegion("28720", "옹진군"),
    ),
    # Gwangju
    "29": (
        SubRegion("29110", "동구"),
        SubRegion("29140", "서구"),
        SubRegion("29155", "남구"),
        SubRegion("29170", "북구"),
        SubRegion("29200", "광산구"),
    ),
    # Daejeon
    "30": (
        SubRegion("30110", "동구"),
        SubRegion("30140", "중구"),
        SubRegion("30170", "서구"),
        SubRegion("30200", "유성구"),
        SubRegion("30230", "대덕구"),
    ),
    # Ulsan
    "31": (
        SubRegion("31110", "중구"),
        SubRegion("31140", "남구"),
        SubRegion("31170", "동구"),
        SubRegion("31200", "북구"),
        SubRegion("31710", "울주군"),
    ),
    # Sejong
    "36": (
        SubRegion("36110", "세종시"),
    ),
    # Gyeonggi
    "41": (
        SubRegion("41111", "수원시장안구"),
        SubRegion("41113", "수원시권선구"),
        SubRegion("41115", "수원시팔달구"),
        SubRegion("41117", "수원시영통구"),
        SubRegion("41131", "성남시수정구"),
        SubRegion("41133", "성남시중원구"),
        SubRegion("41135", "성남시분당구"),
        SubRegion("41150", "의정부시"),
        SubRegion("41171", "안양시만안구"),
        SubRegion("41173", "안양시동안구"),
        SubRegion("41190", "부천시"),
        SubRegion("41210", "광명시"),
        SubRegion("41220", "평택시"),
        SubRegion("41250", "동두천시"),
        SubRegion("41271", "안산시상록구"),
        SubRegion("41273", "안산시단원구"),
        SubRegion("41281", "고양시덕양구"),
        SubRegion("41285", "고양시일산동구"),
        SubRegion("41287", "고양시일산서구"),
        SubRegion("41290", "과천시"),
        SubRegion("41310", "구리시"),
        SubRegion("41360", "남양주시"),
        SubRegion("41370", "오산시"),
        SubRegion("41390", "시흥시"),
        SubRegion("41410", "군포시"),
        SubRegion("41430", "의왕시"),
        SubRegion("41450", "하남시"),
        SubRegion("41461", "용인시처인구"),
        SubRegion("41463", "용인시기흥구"),
        SubRegion("41465", "용인시수지구"),
        SubRegion("41480", "파주시"),
        SubRegion("41500", "이천시"),
        SubRegion("41550", "안성시"),
        SubRegion("41570", "김포시"),
        SubRegion("41590", "화성시"),
        SubRegion("41610", "광주시"),
        SubRegion("41630", "양주시"),
        SubRegion("41650", "포천시"),
        SubRegion("41670", "여주시"),
        SubRegion("41800", "연천군"),
        SubRegion("41820", "가평군"),
        SubRegion("41830", "양평군"),
    ),
    # Gangwon
    "42": (
        SubRegion("42110", "춘천시"),
        SubRegion("42130", "원주시"),
        SubRegion("42150", "강릉시"),
        SubRegion("42170", "동해시"),
        SubRegion("42190", "태백시"),
        SubRegion("42210", "속초시"),
        SubRegion("42230", "삼척시"),
        SubRegion("42720", "홍천군"),
        SubRegion("42730", "횡성군"),
        SubRegion("42750", "영월군"),
        SubRegion("42760", "평창군"),
        SubRegion("42770", "정선군"),
        SubRegion("42780", "철원군"),
        SubRegion("42790", "화천군"),
        SubRegion("42800", "양구군"),
        SubRegion("42810", "인제군"),
        SubRegion("42820", "고성군"),
        SubRegion("42830", "양양군"),
    ),
    # North Chungcheong
    "43": (
        SubRegion("43111", "청주시상당구"),
        SubRegion("43112", "청주시서원구"),
        SubRegion("43113", "청주시흥덕구"),
        SubRegion("43114", "청주시청원구"),
        SubRegion("43130", "충주시"),
        SubRegion("43150", "제천시"),
        SubRegion("43720", "보은군"),
        SubRegion("43730", "옥천군"),
        SubRegion("43740", "영동군"),
        SubRegion("43745", "증평군"),
        SubRegion("43750", "진천군"),
        SubRegion("43760", "괴산군"),
        SubRegion("43770", "음성군"),
        SubRegion("43800", "단양군"),
    ),
    # South Chungcheong
    "44": (
        SubRegion("44131", "천안시동남구"),
        SubRegion("44133", "천안시서북구"),
        SubRegion("44150", "공주시"),
        SubRegion("44180", "보령시"),
        SubRegion("44200", "아산시"),
        SubRegion("44210", "서산시"),
        SubRegion("44230", "논산시"),
        SubRegion("44250", "계룡시"),
        SubRegion("44270", "당진시"),
        SubRegion("44710", "금산군"),
        SubRegion("44760", "부여군"),
        SubRegion("44770", "서천군"),
        SubRegion("44790", "청양군"),
        SubRegion("44800", "홍성군"),
        SubRegion("44810", "예산군"),
        SubRegion("44825", "태안군"),
    ),
    # North Jeolla
    "45": (
        SubRegion("45111", "전주시완산구"),
        SubRegion("45113", "전주시덕진구"),
        SubRegion("45130", "군산시"),
        SubRegion("45140", "익산시"),
        SubRegion("45180", "정읍시"),
        SubRegion("45190", "남원시"),
        SubRegion("45210", "김제시"),
        SubRegion("45710", "완주군"),
        SubRegion("45720", "진안군"),
        SubRegion("45730", "무주군"),
        SubRegion("45740", "장수군"),
        SubRegion("45750", "임실군"),
        SubRegion("45770", "순창군"),
        SubRegion("45790", "고창군"),
        SubRegion("45800", "부안군"),
    ),
    # South Jeolla
    "46": (
        SubRegion("46110", "목포시"),
        SubRegion("46130", "여수시"),
        SubRegion("46150", "순천시"),
        SubRegion("46170", "나주시"),
        SubRegion("46230", "광양시"),
        SubRegion("46710", "담양군"),
        SubRegion("46720", "곡성군"),
        SubRegion("46730", "구례군"),
        SubRegion("46770", "고흥군"),
        SubRegion("46780", "보성군"),
        SubRegion("46790", "화순군"),
        SubRegion("46800", "장흥군"),
        SubRegion("46810", "강진군"),
        SubRegion("46820", "해남군"),
        SubRegion("46830", "영암군"),
        SubRegion("46840", "무안군"),
        SubRegion("46860", "함평군"),
        SubRegion("46870", "영광군"),
        SubRegion("46880", "장성군"),
        SubRegion("46890", "완도군"),
        SubRegion("46900", "진도군"),
        SubRegion("46910", "신안군"),
    ),
    # North Gyeongsang
    "47": (
        SubRegion("47111", "포항시남구"),
        SubRegion("47113", "포항시북구"),
        SubRegion("47130", "경주시"),
        SubRegion("47150", "김천시"),
        SubRegion("47170", "안동시"),
        SubRegion("47190", "구미시"),
        SubRegion("47210", "영주시"),
        SubRegion("47230", "영천시"),
        SubRegion("47250", "상주시"),
        SubRegion("47280", "문경시"),
        SubRegion("47290", "경산시"),
        SubRegion("47720", "의성군"),
        SubRegion("47730", "청송군"),
        SubRegion("47750", "영양군"),
        SubRegion("47760", "영덕군"),
        SubRegion("47770", "청도군"),
        SubRegion("47780", "고령군"),
        SubRegion("47790", "성주군"),
        SubRegion("47800", "칠곡군"),
        SubRegion("47820", "예천군"),
        SubRegion("47830", "봉화군"),
        SubRegion("47840", "울진군"),
        SubRegion("47850", "울릉군"),
    ),
    # South Gyeongsang
    "48": (
        SubRegion("48121", "창원시의창구"),
        SubRegion("48123", "창원시성산구"),
        SubRegion("48125", "창원시마산합포구"),
        SubRegion("48127", "창원시마산회원구"),
        SubRegion("48129", "창원시진해구"),
        SubRegion("48170", "진주시"),
        SubRegion("48220", "통영시"),
        SubRegion("48240", "사천시"),
        SubRegion("48250", "김해시"),
        SubRegion("48270", "밀양시"),
        SubRegion("48310", "거제시"),
        SubRegion("48330", "양산시"),
        SubRegion("48720", "의령군"),
        SubRegion("48730", "함안군"),
        SubRegion("48740", "창녕군"),
        SubRegion("48820", "고성군"),
        SubRegion("48840", "남해군"),
        SubRegion("48850", "하동군"),
        SubRegion("48860", "산청군"),
        SubRegion("48870", "함양군"),
        SubRegion("48880", "거창군"),
        SubRegion("48890", "합천군"),
    ),
    # Jeju
    "50": (
        SubRegion("50110", "제주시"),
        SubRegion("50130", "서귀포시"),
    ),
    }
)


def regions_for(source: SourceDescriptor) -> tuple[str, ...]:
    """Return the ordered region list of a source."""
    return source.regions


def sub_regions_for(source: SourceDescriptor, region: str) -> tuple[SubRegion, ...]:
    """Return the ordered district list for district-scoped paged APIs."""
    if source.adapter_kind is not AdapterKind.PAGED_API:
        return ()
    code = source.region_code(region)
    if code is None:
        return ()
    return DISTRICTS.get(code, ())


def region_aliases(region: str) -> tuple[str, ...]:
    return REGION_ALIASES.get(region, (region,))


def matches_region(region: str, text: str) -> bool:
    """Return True when free text names the region, or region is nationwide."""
    if region == NATIONWIDE:
        return True
    return any(alias in text for alias in region_aliases(region))
