"""Tests for internal transfer detection and the transfer service."""

import pytest
from datetime import date
from decimal import Decimal

from treasury.domain.entities import MatchingConfig, MovementOrigin, MovementStatus
from treasury.domain.errors import ConflictError, NotFoundError, ValidationError
from treasury.domain.transfers import detect_transfer_pairs, pair_score

CONFIG = MatchingConfig()


def pair_ids(detection):
    return [(p.outgoing.id, p.incoming.id) for p in detection.pairs]


class TestDetectTransferPairs:
    """Tests for the pure detection pass."""

    def test_opposite_movements_on_two_accounts(self, make_movement):
        """Test -300 on day 5 and +300 on day 6 form a transfer."""
        out_mov = make_movement(account_id=1, day=5, amount="-300.00")
        in_mov = make_movement(account_id=2, day=6, amount="300.00")

        detection = detect_transfer_pairs([out_mov, in_mov], [1, 2], CONFIG)

        assert pair_ids(detection) == [(out_mov.id, in_mov.id)]
        assert detection.ambiguous == []

    def test_amount_within_tolerance(self, make_movement):
        """Test a small fee difference still pairs."""
        out_mov = make_movement(account_id=1, day=5, amount="-300.00")
        in_mov = make_movement(account_id=2, day=5, amount="299.50")

        assert len(detect_transfer_pairs([out_mov, in_mov], [1, 2], CONFIG).pairs) == 1

    @pytest.mark.parametrize(
        "out_kwargs, in_kwargs",
        [
            ({"account_id": 1}, {"account_id": 1}),
            ({"account_id": 1}, {"account_id": 2, "day": 9}),
            ({"account_id": 1}, {"account_id": 2, "amount": "298.00"}),
            ({"account_id": 1, "origin": MovementOrigin.FORECAST}, {"account_id": 2}),
            ({"account_id": 1, "ignored": True}, {"account_id": 2}),
            ({"account_id": 1, "transfer_id": 7}, {"account_id": 2}),
            ({"account_id": 1, "status": MovementStatus.CONCILIADO}, {"account_id": 2}),
            ({"account_id": 1}, {"account_id": 2, "matched_movement_id": 9}),
            ({"account_id": 1}, {"account_id": 3}),
        ],
    )
    def test_ineligible_pairs(self, make_movement, out_kwargs, in_kwargs):
        """Test same account, wide gaps, forecasts, ignored, reconciled and linked legs never pair."""
        out_mov = make_movement(**{"day": 5, "amount": "-300.00", **out_kwargs})
        in_mov = make_movement(**{"day": 5, "amount": "300.00", **in_kwargs})

        detection = detect_transfer_pairs([out_mov, in_mov], [1, 2], CONFIG)

        assert detection.pairs == []

    def test_rejected_pair_is_skipped(self, make_movement):
        """Test a pair the user unlinked is not proposed, but its legs can pair elsewhere."""
        out_mov = make_movement(account_id=1, day=5, amount="-300.00")
        in_mov = make_movement(account_id=2, day=5, amount="300.00")
        other_in = make_movement(account_id=3, day=7, amount="300.00")

        detection = detect_transfer_pairs(
            [out_mov, in_mov, other_in], [1, 2, 3], CONFIG, rejected={(out_mov.id, in_mov.id)}
        )

        assert pair_ids(detection) == [(out_mov.id, other_in.id)]

    def test_same_sign_never_pairs(self, make_movement):
        """Test two incomes are not a transfer."""
        a = make_movement(account_id=1, day=5, amount="300.00")
        b = make_movement(account_id=2, day=5, amount="300.00")

        assert pair_score(a, b, CONFIG) is None
        assert detect_transfer_pairs([a, b], [1, 2], CONFIG).pairs == []

    def test_prefers_smallest_deviation(self, make_movement):
        """Test the closest partner wins and each movement is claimed once."""
        out_mov = make_movement(account_id=1, day=5, amount="-100.00")
        far = make_movement(account_id=2, day=7, amount="100.00")
        near = make_movement(account_id=3, day=5, amount="100.00")

        detection = detect_transfer_pairs([out_mov, far, near], [1, 2, 3], CONFIG)

        assert pair_ids(detection) == [(out_mov.id, near.id)]

    def test_second_best_pairs_remaining_movements(self, make_movement):
        """Test a claimed movement isn't reused while others still pair."""
        a_out = make_movement(account_id=1, day=5, amount="-100.00")
        b_in = make_movement(account_id=2, day=5, amount="100.00")
        c_out = make_movement(account_id=3, day=6, amount="-100.00")

        detection = detect_transfer_pairs([a_out, b_in, c_out], [1, 2, 3], CONFIG)

        assert pair_ids(detection) == [(a_out.id, b_in.id)]

    def test_ties_are_left_unmatched(self, make_movement):
        """Test two equally good partners leave the movement unmatched."""
        out_mov = make_movement(account_id=1, day=5, amount="-100.00")
        b = make_movement(account_id=2, day=5, amount="100.00")
        c = make_movement(account_id=3, day=5, amount="100.00")

        detection = detect_transfer_pairs([out_mov, b, c], [1, 2, 3], CONFIG)

        assert detection.pairs == []
        assert len(detection.ambiguous) == 1
        assert detection.ambiguous[0].movement_id == out_mov.id
        assert set(detection.ambiguous[0].candidate_ids) == {b.id, c.id}

    def test_keyword_movements_without_partner_are_pending(self, make_movement):
        """Test a transfer-looking movement with no counterpart is pending."""
        lonely = make_movement(account_id=1, day=5, amount="-500.00", description="Traspaso a ahorro")
        plain = make_movement(account_id=1, day=5, amount="-20.00", description="Farmacia")

        detection = detect_transfer_pairs([lonely, plain], [1, 2], CONFIG)

        assert detection.pending == [lonely]

    def test_zero_date_window(self, make_movement):
        """Test a zero window only pairs same-day movements."""
        config = MatchingConfig(date_window_days=0)
        out_mov = make_movement(account_id=1, day=5, amount="-50.00")
        same_day = make_movement(account_id=2, day=5, amount="50.00")
        next_day = make_movement(account_id=2, day=6, amount="50.00")

        assert pair_score(out_mov, same_day, config) == Decimal("0")
        assert pair_score(out_mov, next_day, config) is None


class TestTransferService:
    """Tests for persisted transfers."""

    def _two_legs(self, movement_service, sample_account, savings_account,
                  out_amount="-300.00", in_amount="300.00"):
        out_id = movement_service.create_movement(
            sample_account.id, date(2024, 1, 5), Decimal(out_amount), "Traspaso a ahorro"
        )
        in_id = movement_service.create_movement(
            savings_account.id, date(2024, 1, 6), Decimal(in_amount), "Traspaso desde nómina"
        )
        return out_id, in_id

    def test_detect_and_link(self, temp_db, transfer_service, movement_service,
                             sample_account, savings_account):
        """Test detected pairs are stored and both legs point to the transfer."""
        out_id, in_id = self._two_legs(movement_service, sample_account, savings_account)

        detection = transfer_service.detect_and_link(temp_db.list_movements())

        assert len(detection.pairs) == 1
        transfer = transfer_service.list_transfers()[0]
        assert transfer.detected is True
        assert transfer.from_account_id == sample_account.id
        assert transfer.to_account_id == savings_account.id
        assert transfer.amount == Decimal("300.00")
        out_leg = temp_db.get_movement(out_id)
        in_leg = temp_db.get_movement(in_id)
        assert out_leg.transfer_id == in_leg.transfer_id == transfer.id
        # Symmetry: equal magnitude, opposite signs
        assert abs(out_leg.amount) == abs(in_leg.amount)
        assert (out_leg.amount > 0) != (in_leg.amount > 0)

    def test_detection_skips_inactive_accounts(self, temp_db, transfer_service, movement_service,
                                               account_service, sample_account, savings_account):
        """Test movements of inactive accounts don't take part."""
        self._two_legs(movement_service, sample_account, savings_account)
        account_service.deactivate_account(savings_account.id)

        detection = transfer_service.detect_and_link(temp_db.list_movements())

        assert detection.pairs == []

    def test_create_manual_transfer(self, temp_db, transfer_service, movement_service,
                                    sample_account, savings_account):
        """Test linking two legs by hand."""
        out_id, in_id = self._two_legs(movement_service, sample_account, savings_account)

        transfer_id = transfer_service.create_transfer(out_id, in_id, note="Ahorro mensual")

        transfer = transfer_service.get_transfer(transfer_id)
        assert transfer.detected is False
        assert transfer.note == "Ahorro mensual"
        assert temp_db.get_movement(out_id).transfer_id == transfer_id

    def test_manual_transfer_requires_equal_amounts(self, transfer_service, movement_service,
                                                    sample_account, savings_account):
        """Test manual transfers reject different amounts."""
        out_id, in_id = self._two_legs(
            movement_service, sample_account, savings_account, in_amount="299.50"
        )
        with pytest.raises(ValidationError, match="amounts differ"):
            transfer_service.create_transfer(out_id, in_id)

    def test_manual_transfer_validations(self, transfer_service, movement_service,
                                         sample_account, savings_account):
        """Test signs, accounts and existing links are checked."""
        out_id, in_id = self._two_legs(movement_service, sample_account, savings_account)
        same_account = movement_service.create_movement(
            sample_account.id, date(2024, 1, 6), Decimal("300.00"), "Ingreso"
        )

        with pytest.raises(ValidationError, match="negative"):
            transfer_service.create_transfer(in_id, out_id)
        with pytest.raises(ValidationError, match="different accounts"):
            transfer_service.create_transfer(out_id, same_account)
        with pytest.raises(NotFoundError):
            transfer_service.create_transfer(out_id, 999)

        transfer_service.create_transfer(out_id, in_id)
        with pytest.raises(ConflictError, match="already part of transfer"):
            transfer_service.create_transfer(out_id, in_id)

    def test_unlink_false_positive(self, temp_db, transfer_service, movement_service,
                                   sample_account, savings_account):
        """Test unlinking removes the transfer and clears both legs."""
        out_id, in_id = self._two_legs(movement_service, sample_account, savings_account)
        transfer_service.detect_and_link(temp_db.list_movements())
        transfer = transfer_service.list_transfers()[0]

        transfer_service.unlink(transfer.id)

        assert transfer_service.list_transfers() == []
        assert temp_db.get_movement(out_id).transfer_id is None
        assert temp_db.get_movement(in_id).transfer_id is None
        with pytest.raises(NotFoundError):
            transfer_service.unlink(transfer.id)

    def test_unlinked_pair_is_not_detected_again(self, temp_db, transfer_service, movement_service,
                                                 sample_account, savings_account):
        """Test a rejected pair survives later detection passes."""
        self._two_legs(movement_service, sample_account, savings_account)
        transfer_service.detect_and_link(temp_db.list_movements())
        transfer_service.unlink(transfer_service.list_transfers()[0].id)

        detection = transfer_service.detect_and_link(temp_db.list_movements())

        assert detection.pairs == []
        assert transfer_service.list_transfers() == []

    def test_manual_link_lifts_rejection(self, temp_db, transfer_service, movement_service,
                                         sample_account, savings_account):
        out_id, in_id = self._two_legs(movement_service, sample_account, savings_account)
        transfer_service.detect_and_link(temp_db.list_movements())
        transfer_service.unlink(transfer_service.list_transfers()[0].id)
        assert temp_db.list_rejected_transfer_pairs() == {(out_id, in_id)}

        transfer_service.create_transfer(out_id, in_id)

        assert temp_db.list_rejected_transfer_pairs() == set()

    def test_reconciled_movement_cannot_become_leg(self, transfer_service, movement_service,
                                                   sample_account, savings_account):
        out_id, in_id = self._two_legs(movement_service, sample_account, savings_account)
        movement_service.reconcile(out_id)

        with pytest.raises(ConflictError, match="reconciled"):
            transfer_service.create_transfer(out_id, in_id)

    def test_list_transfers_by_account(self, temp_db, transfer_service, movement_service,
                                       account_service, sample_account, savings_account):
        """Test filtering transfers by a touched account."""
        self._two_legs(movement_service, sample_account, savings_account)
        transfer_service.detect_and_link(temp_db.list_movements())
        other_id = account_service.create_account(alias="Otra", bank_name="Sabadell")

        assert len(transfer_service.list_transfers(account_id=savings_account.id)) == 1
        assert transfer_service.list_transfers(account_id=other_id) == []
