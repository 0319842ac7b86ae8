from hubfetch.core.filter import FilterEngine
from hubfetch.models import EntryType, FilterCriteria, TreeEntry


def make_file(path: str, size: int = 100, entry_type: EntryType = EntryType.FILE) -> TreeEntry:
    """Helper function to build TreeEntry instances for tests."""
    if entry_type is EntryType.DIRECTORY:
        return TreeEntry(type=entry_type, path=path)
    return TreeEntry(type=entry_type, path=path, size=size)


def test_include_pattern_matches():
    """Scenario: Path matching with include_patterns"""
    criteria = FilterCriteria(include_patterns=['*.py'])
    assert criteria.matches_path('main.py') is True
    assert criteria.matches_path('README.md') is False


def test_exclude_pattern_blocks_path():
    """Scenario: Path exclusion with exclude_patterns"""
    criteria = FilterCriteria(exclude_patterns=['*.md'])
    assert criteria.matches_path('script.py') is True
    assert criteria.matches_path('docs/README.md') is False


def test_hidden_files_handling():
    """Scenario: Handling of hidden files (with include_hidden=True/False)"""
    hidden_path = '.github/workflows/ci.yml'
    visible_criteria = FilterCriteria(include_hidden=False)
    assert visible_criteria.matches_path(hidden_path) is False

    hidden_criteria = FilterCriteria(include_hidden=True)
    assert hidden_criteria.matches_path(hidden_path) is True


def test_file_type_presets():
    """Scenario: Preset categories restrict matches"""
    criteria = FilterCriteria(file_types={'models', 'configs'})
    assert criteria.matches_path('model.safetensors') is True
    assert criteria.matches_path('config.json') is True
    assert criteria.matches_path('README.md') is False


def test_search_query():
    """Scenario: Search narrows results by substring"""
    criteria = FilterCriteria(search='token')
    assert criteria.matches_path('tokenizer.json') is True
    assert criteria.matches_path('config.json') is False


def test_unknown_size_passes_size_bounds():
    """Scenario: Entries without a size are never excluded by size bounds"""
    criteria = FilterCriteria(min_file_size=10, max_file_size=20)
    assert criteria.matches_size(None) is True
    assert criteria.matches_size(15) is True
    assert criteria.matches_size(5) is False
    assert criteria.matches_size(25) is False


def test_directories_are_never_included():
    engine = FilterEngine(FilterCriteria())
    assert engine.should_include_file(make_file('src', entry_type=EntryType.DIRECTORY)) is False


def test_combined_filters_in_engine():
    """Scenario: Combination of filters (include + exclude + size constraints)"""
    criteria = FilterCriteria(
        include_patterns=["src/*.py"],
        exclude_patterns=["*/test_*.py"],
        min_file_size=50,
        max_file_size=500,
    )
    engine = FilterEngine(criteria)

    files = [
        make_file("src/main.py", size=200),
        make_file("src/test_helper.py", size=200),
        make_file("src/small.py", size=10),
        make_file("src/large.py", size=600),
        make_file("src/docs/readme.md", size=100),
        make_file("src/utils", entry_type=EntryType.DIRECTORY),
    ]

    result = engine.filter_files(files)

    assert [file.path for file in result.included_files] == ["src/main.py"]
    assert result.total_files == 6
    assert result.filtered_files == 1
    assert len(result.excluded_files) == 5
