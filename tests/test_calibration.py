import pytest

from subalign.calibration import (
    Accepted,
    CalibrationController,
    CalibrationPolicy,
    Exhausted,
    Init,
    Searching,
    calibrate_track,
    initial_window_sec,
    run_calibration,
)
from subalign.exceptions import (
    AudioExtractionError,
    InvalidConfiguration,
    LowConfidenceRefused,
    NoAlignablePairs,
    NoCuesInWindow,
)
from subalign.models import AlignmentResult, Cue


def _result(offset_ms=500, confidence="high", matched=10, total=10, window=0):
    return AlignmentResult(offset_ms=offset_ms, confidence=confidence, matched_count=matched,
                           total_asr_segments=total, window_start_sec=window, sample_sec=60)


class ScriptedEstimator:
    """Plays back one outcome per call and records the windows it was asked for."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.windows = []

    def __call__(self, window_start_sec):
        self.windows.append(window_start_sec)
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


def test_initial_window_leads_the_first_cue_by_two_seconds():
    policy = CalibrationPolicy()
    assert initial_window_sec(policy, 95_400) == 93
    assert initial_window_sec(policy, 1_500) == 0
    assert initial_window_sec(policy, None) == 0


def test_explicit_window_start_wins():
    assert initial_window_sec(CalibrationPolicy(window_start_sec=300), 95_400) == 300


def test_first_confident_estimate_is_accepted():
    estimator = ScriptedEstimator(_result())

    outcome = CalibrationController(estimator, CalibrationPolicy(), first_cue_ms=95_400).run()

    assert isinstance(outcome, Accepted)
    assert outcome.attempts == 1
    assert estimator.windows == [93]


def test_step_walks_the_states():
    controller = CalibrationController(ScriptedEstimator(NoAlignablePairs("none"), _result()), CalibrationPolicy())

    state = controller.step(Init())
    assert state == Searching(window_start_sec=0, attempt=1)
    state = controller.step(state)
    assert state == Searching(window_start_sec=60, attempt=2)
    state = controller.step(state)
    assert isinstance(state, Accepted)
    assert controller.step(state) is state


def test_empty_windows_are_retried_then_the_last_error_is_raised():
    estimator = ScriptedEstimator(*[NoCuesInWindow("No subtitle lines found in sample window.")] * 4)

    with pytest.raises(NoCuesInWindow):
        run_calibration(estimator, CalibrationPolicy(max_attempts=4), first_cue_ms=10_000)

    assert estimator.windows == [8, 68, 128, 188]


def test_exhaustion_reports_the_attempt_count():
    estimator = ScriptedEstimator(AudioExtractionError("ffmpeg"), AudioExtractionError("ffmpeg again"))

    outcome = CalibrationController(estimator, CalibrationPolicy(max_attempts=2)).run()

    assert isinstance(outcome, Exhausted)
    assert outcome.attempts == 2
    assert str(outcome.error) == "ffmpeg again"


def test_low_confidence_moves_to_the_next_window():
    estimator = ScriptedEstimator(_result(confidence="low", matched=2), _result(offset_ms=480))

    outcome = run_calibration(estimator, CalibrationPolicy())

    assert outcome.result.offset_ms == 480
    assert outcome.attempts == 2
    assert estimator.windows == [0, 60]


def test_low_confidence_is_accepted_when_allowed():
    estimator = ScriptedEstimator(_result(confidence="low", matched=2))

    outcome = run_calibration(estimator, CalibrationPolicy(allow_low_confidence=True))

    assert outcome.result.confidence == "low"
    assert outcome.attempts == 1


def test_low_confidence_on_the_last_attempt_is_accepted():
    estimator = ScriptedEstimator(_result(confidence="low", offset_ms=100), _result(confidence="low", offset_ms=200))

    outcome = run_calibration(estimator, CalibrationPolicy(max_attempts=2))

    assert outcome.result.offset_ms == 200
    assert outcome.result.is_low_confidence


def test_earlier_low_estimate_survives_a_failing_last_window():
    estimator = ScriptedEstimator(_result(confidence="low", offset_ms=300), NoCuesInWindow("end of file"))

    outcome = run_calibration(estimator, CalibrationPolicy(max_attempts=2))

    assert outcome.result.offset_ms == 300
    assert outcome.attempts == 2


def test_invalid_configuration_is_never_retried():
    estimator = ScriptedEstimator(InvalidConfiguration("bad steps"), _result())

    with pytest.raises(InvalidConfiguration):
        run_calibration(estimator, CalibrationPolicy())

    assert len(estimator.windows) == 1


@pytest.mark.parametrize("policy", [
    CalibrationPolicy(sample_sec=0),
    CalibrationPolicy(max_attempts=0),
    CalibrationPolicy(window_start_sec=-1),
])
def test_malformed_policy_is_rejected(policy):
    with pytest.raises(InvalidConfiguration):
        CalibrationController(ScriptedEstimator(), policy)


CUES = [Cue(12_000, 14_000, "ありがとう")]


def test_calibrate_track_is_a_dry_run_by_default():
    saved = []

    outcome = calibrate_track(ScriptedEstimator(_result()), CUES, CalibrationPolicy(), on_apply=saved.append)

    assert outcome.applied is False
    assert saved == []


def test_calibrate_track_applies_a_confident_offset():
    saved = []

    outcome = calibrate_track(ScriptedEstimator(_result(offset_ms=-250)), CUES, CalibrationPolicy(),
                              apply=True, on_apply=saved.append)

    assert outcome.applied is True
    assert [r.offset_ms for r in saved] == [-250]


def test_calibrate_track_refuses_to_apply_low_confidence():
    saved = []
    estimator = ScriptedEstimator(_result(confidence="low"))

    with pytest.raises(LowConfidenceRefused):
        calibrate_track(estimator, CUES, CalibrationPolicy(max_attempts=1), apply=True, on_apply=saved.append)

    assert saved == []


def test_calibrate_track_applies_low_confidence_when_allowed():
    saved = []
    estimator = ScriptedEstimator(_result(confidence="low"))

    outcome = calibrate_track(estimator, CUES, CalibrationPolicy(allow_low_confidence=True),
                              apply=True, on_apply=saved.append)

    assert outcome.applied is True
    assert len(saved) == 1
