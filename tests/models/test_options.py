import asyncio

import pytest

from hubfetch.infrastructure.error_handler import ErrorCode, RepositoryError
from hubfetch.models.config import (
    DownloadOptions,
    EngineConfig,
    ExploreOptions,
    InfoOptions,
    ListOptions,
    MAX_FILES_LIMIT,
)


# ---- EngineConfig ----------------------------------------------------------

def test_engine_config_defaults():
    config = EngineConfig()

    assert config.version == 1
    assert config.max_retries == 5
    assert config.max_concurrent_downloads == 5
    assert config.task_max_retries == 3
    assert config.listing_ttl == 60.0
    assert config.cache_policy == "lru"


@pytest.mark.parametrize(
    "kwargs",
    [
        {"version": 2},
        {"max_retries": 0},
        {"max_concurrent_downloads": 0},
        {"cache_policy": "random"},
        {"download_timeout_floor": 100.0, "download_timeout_ceiling": 10.0},
    ],
)
def test_engine_config_validation(kwargs):
    with pytest.raises(ValueError):
        EngineConfig(**kwargs)


def test_download_timeout_scales_with_size():
    config = EngineConfig()

    assert config.download_timeout(None) == 30.0
    assert config.download_timeout(1024) == 30.0
    assert config.download_timeout(100 * 1024 * 60) == 60.0
    assert config.download_timeout(50 * 1024 ** 3) == 3600.0


# ---- Option aliases --------------------------------------------------------

def test_list_options_defaults():
    opts = ListOptions()

    assert opts.path == ""
    assert opts.revision == "main"
    assert opts.max_files == 100
    assert opts.max_depth == 3
    assert opts.effective_max_depth == 3


def test_non_recursive_listing_has_depth_zero():
    assert ListOptions(recursive=False).effective_max_depth == 0


def test_from_mapping_resolves_aliases():
    opts = ListOptions.from_mapping({
        "allow_patterns": "*.safetensors",
        "ignore_patterns": ["*.bin", "*.pt"],
        "max_size_per_file": "1GB",
        "min_size": "1KB",
        "file_types": ["models"],
        "maxFiles": 50,
        "sort": "size",
    })

    assert opts.filters.include_patterns == ["*.safetensors"]
    assert opts.filters.exclude_patterns == ["*.bin", "*.pt"]
    assert opts.filters.max_file_size == 1024 ** 3
    assert opts.filters.min_file_size == 1024
    assert opts.filters.file_types == {"models"}
    assert opts.max_files == 50
    assert opts.sort_by == "size"


def test_primary_name_wins_over_alias():
    opts = ListOptions.from_mapping({"include": ["*.json"], "pattern": "*.md"})
    assert opts.filters.include_patterns == ["*.json"]


def test_download_options_from_mapping():
    opts = DownloadOptions.from_mapping({"force_redownload": True, "maxConcurrent": 2, "max_retries": 1})

    assert opts.force is True
    assert opts.max_concurrent == 2
    assert opts.max_retries == 1
    assert isinstance(opts.listing_options(), ListOptions)


def test_explore_options_from_mapping():
    opts = ExploreOptions.from_mapping({"tree": True, "maxDepth": 2})
    assert opts.tree_view is True
    assert opts.max_depth == 2


# ---- Validation ------------------------------------------------------------

@pytest.mark.parametrize(
    "data",
    [
        {"max_files": 0},
        {"max_files": -1},
        {"max_depth": -1},
        {"max_files": "ten"},
        {"sort_by": "date"},
        {"max_size": "huge"},
        {"file_types": ["videos"]},
        {"revision": "../main"},
    ],
)
def test_invalid_options_raise_invalid_params(data):
    with pytest.raises(RepositoryError) as excinfo:
        ListOptions.from_mapping(data)
    assert excinfo.value.code is ErrorCode.INVALID_PARAMS


def test_path_traversal_in_path_option():
    with pytest.raises(RepositoryError) as excinfo:
        ListOptions(path="models/../../etc")
    assert excinfo.value.code is ErrorCode.PATH_TRAVERSAL


def test_hard_limit_raises_limit_exceeded():
    with pytest.raises(RepositoryError) as excinfo:
        ExploreOptions(max_files=MAX_FILES_LIMIT + 1)
    assert excinfo.value.code is ErrorCode.LIMIT_EXCEEDED


def test_path_is_normalized():
    assert ListOptions(path="/onnx/").path == "onnx"


def test_download_options_validation():
    with pytest.raises(RepositoryError):
        DownloadOptions(max_concurrent=0)
    with pytest.raises(RepositoryError):
        DownloadOptions(max_retries=-1)


def test_download_cancel_event_aliases():
    event = asyncio.Event()

    assert DownloadOptions.from_mapping({"cancel_event": event}).cancel_event is event
    assert DownloadOptions.from_mapping({"signal": event}).cancel_event is event
    assert DownloadOptions().cancel_event is None


# ---- InfoOptions -----------------------------------------------------------

def test_info_options_from_mapping():
    options = InfoOptions.from_mapping({"revision": "v1.0", "token": "hf_x"})

    assert options.revision == "v1.0"
    assert options.token == "hf_x"
    assert InfoOptions().revision is None


def test_info_options_reject_bad_revision():
    with pytest.raises(RepositoryError) as excinfo:
        InfoOptions(revision="../main")
    assert excinfo.value.code is ErrorCode.INVALID_PARAMS
