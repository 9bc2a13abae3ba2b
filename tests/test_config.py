from pathlib import Path

from fieldops.config import Settings


def test_data_files_default_under_data_root(tmp_path: Path):
    settings = Settings(data_root=tmp_path)

    assert settings.jobs_file == (tmp_path / "jobs.csv").resolve()
    assert settings.technicians_file == (tmp_path / "technicians.csv").resolve()
    assert settings.locations_file == (tmp_path / "locations.csv").resolve()


def test_explicit_data_file_wins_over_data_root(tmp_path: Path):
    jobs = tmp_path / "exports" / "week.csv"

    settings = Settings(data_root=tmp_path, jobs_file=jobs)

    assert settings.jobs_file == jobs.resolve()
    assert settings.technicians_file == (tmp_path / "technicians.csv").resolve()


def test_origin_parsed_from_string():
    assert Settings(dispatch_origin="24.7, 46.6").dispatch_origin == (24.7, 46.6)
