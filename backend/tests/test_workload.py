from collections import Counter

from slotforge.core.config import Settings
from slotforge.services.directory import EmploymentMode, InstructorDirectory, InstructorProfile
from slotforge.services.workload import weekly_period_cap, workload_warnings


def test_caps_follow_employment_mode_and_profile_limit():
    full_time = InstructorProfile("a", "A")
    part_time = InstructorProfile("b", "B", employment_mode=EmploymentMode.part_time)
    limited = InstructorProfile("c", "C", max_weekly_periods=40)
    zero = InstructorProfile("d", "D", max_weekly_periods=0)

    assert weekly_period_cap(full_time) == 30
    assert weekly_period_cap(part_time) == 15
    assert weekly_period_cap(limited) == 30
    assert weekly_period_cap(zero) == 1


def test_workload_warnings_only_for_overloaded():
    directory = InstructorDirectory(
        [InstructorProfile("a", "Mr. A"), InstructorProfile("b", "Ms. B", employment_mode=EmploymentMode.part_time)]
    )

    warnings = workload_warnings(Counter({"a": 30, "b": 16, "ghost": 99}), directory)

    assert warnings == ["Ms. B is scheduled for 16 periods per week (limit 15)"]


def test_part_time_without_days_is_never_available():
    assert not InstructorProfile("b", "B", employment_mode=EmploymentMode.part_time).is_available("Monday")
    assert InstructorProfile("a", "A").is_available("Mon")


def test_settings_accept_comma_separated_lists():
    settings = Settings(school_days="Monday, Tuesday", cors_origins='["http://x"]')
    assert settings.school_days == ["Monday", "Tuesday"]
    assert settings.cors_origins == ["http://x"]
