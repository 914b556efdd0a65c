"""Tests for replay protection."""

from sqlalchemy.exc import OperationalError

from redeem_guard.services.replay_guard import ReplayGuard


def _db_down() -> OperationalError:
    return OperationalError("SELECT 1", {}, Exception("database unavailable"))


def test_plain_payload_is_the_gan(repo) -> None:
    assert ReplayGuard(repo).resolve_gan("GAN0000000042") == "GAN0000000042"


def test_order_reference_resolves_to_gan(repo, make_gift_card, make_order) -> None:
    card = make_gift_card()
    make_order("ord-123", card.gan)
    guard = ReplayGuard(repo)
    assert guard.resolve_gan("https://shop.example.com/giftcard-store/success/ord-123") == card.gan
    assert guard.resolve_gan("/giftcard-store/success/ord-123/") == card.gan


def test_unknown_order_keeps_raw_payload(repo) -> None:
    payload = "/giftcard-store/success/ord-missing"
    assert ReplayGuard(repo).resolve_gan(payload) == payload


def test_redeemed_card_is_a_replay(repo, make_gift_card) -> None:
    card = make_gift_card(redeemed=True)
    check = ReplayGuard(repo).check(card.gan)
    assert check.is_replay
    assert check.card is not None and check.card.id == card.id


def test_active_and_unknown_cards_are_not_replays(repo, make_gift_card) -> None:
    card = make_gift_card()
    guard = ReplayGuard(repo)
    assert not guard.check(card.gan).is_replay
    unknown = guard.check("GAN-NOPE")
    assert not unknown.is_replay
    assert unknown.card is None


def test_storage_errors_fail_open(repo, mocker) -> None:
    mocker.patch.object(repo, "find_gift_card_by_identifier", side_effect=_db_down())
    check = ReplayGuard(repo).check("GAN0000000001")
    assert check.is_replay is False


def test_order_lookup_errors_keep_raw_payload(repo, mocker) -> None:
    mocker.patch.object(repo, "resolve_order_reference_to_gan", side_effect=_db_down())
    assert ReplayGuard(repo).resolve_gan("/success/ord-1") == "/success/ord-1"
