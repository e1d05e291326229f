from models import DetectedObject, VisionResult
from speech_policy import derive_utterance, nearest_object, summarize_status


def result(objects=(), text=()):
    return VisionResult(
        objects=[DetectedObject(name, dist) for name, dist in objects],
        text=list(text),
    )


def test_nearest_object_within_limit_is_spoken():
    vision = result(objects=[("A", 5.0), ("B", 5.1), ("C", 3.0)])
    assert derive_utterance(vision) == "C ahead"


def test_boundary_distance_is_included():
    assert derive_utterance(result(objects=[("door", 5.0)])) == "door ahead"


def test_just_beyond_boundary_is_excluded():
    assert derive_utterance(result(objects=[("door", 5.0001)])) is None


def test_many_near_threshold_objects_never_spoken():
    vision = result(objects=[("car", 5.01), ("bus", 5.2), ("tree", 7.5), ("wall", 12.0)])
    assert derive_utterance(vision) is None


def test_ties_keep_first_in_order():
    vision = result(objects=[("bench", 9.0), ("chair", 2.0), ("table", 2.0)])
    assert nearest_object(vision.objects).name == "chair"
    assert derive_utterance(vision) == "chair ahead"


def test_object_and_text_are_combined():
    vision = result(objects=[("chair", 2.0)], text=["EXIT"])
    assert derive_utterance(vision) == "chair ahead. Text reads: EXIT"


def test_text_is_spoken_regardless_of_distance():
    vision = result(objects=[("sign", 20.0)], text=["  Platform 2 ", "", "   ", "Mind the gap"])
    assert derive_utterance(vision) == "Text reads: Platform 2. Mind the gap"


def test_nothing_to_say():
    assert derive_utterance(result(objects=[("car", 8.0)])) is None
    assert derive_utterance(result(text=[" ", ""])) is None
    assert derive_utterance(VisionResult()) is None


def test_custom_distance_limit():
    vision = result(objects=[("pole", 2.5)])
    assert derive_utterance(vision, max_distance_m=2.0) is None


def test_status_lists_three_nearest_objects():
    vision = result(
        objects=[("door", 4.0), ("car", 9.0), ("chair", 1.2), ("person", 3.0), ("cup", 4.5)],
        text=["OPEN"],
    )
    assert summarize_status(vision) == (
        "Nearby: chair (~1.2m), person (~3.0m), door (~4.0m). Text detected."
    )


def test_status_without_nearby_objects_or_text():
    assert summarize_status(result(objects=[("car", 8.0)])) == "No nearby objects (≤5m). No text."
