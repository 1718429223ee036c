"""Order status transition validator function.

Revision ID: 0002
Revises: 0001
Create Date: 2026-10-17

``validate_order_status_transition(order_id, new_status)`` returns

    {"valid", "current_status", "new_status", "warnings", "blockers",
     "requires_override"}

and is the single owner of the legal-transition rules.  When the order
is already in ``new_status`` only valid / current_status / warnings /
blockers are returned.
"""

revision = "0002"
down_revision = "0001"
branch_labels = None
depends_on = None

from alembic import op


VALIDATOR_SQL = """
CREATE OR REPLACE FUNCTION validate_order_status_transition(_order_id varchar, _new_status varchar)
 RETURNS jsonb
 LANGUAGE plpgsql
AS $function$
DECLARE
  _current_status varchar;
  _has_batches boolean;
  _all_batches_complete boolean;
  _has_deposit_invoice boolean;
  _has_final_invoice boolean;
  _deposit_paid boolean;
  _label_required boolean;
  _is_internal boolean;
  _warnings text[] := '{}';
  _blockers text[] := '{}';
BEGIN
  SELECT
    status, label_required, is_internal,
    EXISTS(SELECT 1 FROM production_batches WHERE so_id = _order_id),
    NOT EXISTS(SELECT 1 FROM production_batches WHERE so_id = _order_id AND status != 'complete'),
    EXISTS(SELECT 1 FROM invoices WHERE so_id = _order_id AND type = 'deposit'),
    EXISTS(SELECT 1 FROM invoices WHERE so_id = _order_id AND type = 'final'),
    deposit_status = 'paid'
  INTO
    _current_status, _label_required, _is_internal,
    _has_batches, _all_batches_complete,
    _has_deposit_invoice, _has_final_invoice, _deposit_paid
  FROM sales_orders
  WHERE id = _order_id;

  IF _current_status IS NULL THEN
    RETURN jsonb_build_object(
      'valid', false, 'warnings', '[]'::jsonb,
      'blockers', jsonb_build_array('Order not found'),
      'requires_override', true
    );
  END IF;

  IF _current_status = _new_status THEN
    RETURN jsonb_build_object('valid', true, 'current_status', _current_status,
                              'warnings', '[]'::jsonb, 'blockers', '[]'::jsonb);
  END IF;

  CASE _new_status
    WHEN 'in_production' THEN
      IF NOT _has_batches THEN
        _warnings := array_append(_warnings, 'No production batches exist for this order');
      END IF;
      IF _current_status NOT IN ('in_queue', 'on_hold') THEN
        _warnings := array_append(_warnings, 'Unusual transition from ' || _current_status);
      END IF;

    WHEN 'in_labeling' THEN
      IF NOT _all_batches_complete THEN
        _blockers := array_append(_blockers, 'All production batches must be complete before labeling');
      END IF;
      IF NOT _label_required THEN
        _warnings := array_append(_warnings, 'Order does not require labeling');
      END IF;

    WHEN 'in_packing' THEN
      IF _label_required AND _current_status != 'in_labeling' THEN
        _warnings := array_append(_warnings, 'Order requires labeling but current status is ' || _current_status);
      END IF;
      IF NOT _all_batches_complete THEN
        _blockers := array_append(_blockers, 'All production batches must be complete before packing');
      END IF;

    WHEN 'awaiting_invoice' THEN
      IF _current_status != 'in_packing' THEN
        _warnings := array_append(_warnings, 'Order should be in packing before invoicing');
      END IF;

    WHEN 'awaiting_payment' THEN
      IF NOT _has_final_invoice THEN
        _blockers := array_append(_blockers, 'Final invoice must be created before marking as awaiting payment');
      END IF;
      IF _current_status != 'awaiting_invoice' THEN
        _warnings := array_append(_warnings, 'Unusual transition from ' || _current_status);
      END IF;

    WHEN 'deposit_due' THEN
      IF NOT _has_deposit_invoice THEN
        _warnings := array_append(_warnings, 'No deposit invoice exists');
      END IF;

    WHEN 'in_queue' THEN
      IF NOT _deposit_paid AND _current_status = 'deposit_due' THEN
        _warnings := array_append(_warnings, 'Deposit has not been marked as paid');
      END IF;

    WHEN 'ready_to_ship' THEN
      IF _is_internal THEN
        _blockers := array_append(_blockers, 'Internal orders should use stocked status instead');
      END IF;

    WHEN 'shipped' THEN
      IF _current_status != 'ready_to_ship' THEN
        _warnings := array_append(_warnings, 'Order should be in ready_to_ship status before shipping');
      END IF;

    WHEN 'stocked' THEN
      IF NOT _is_internal THEN
        _blockers := array_append(_blockers, 'Only internal orders can be marked as stocked');
      END IF;
      IF _current_status != 'in_packing' THEN
        _warnings := array_append(_warnings, 'Order should be in packing before stocking');
      END IF;

    ELSE
      NULL;
  END CASE;

  RETURN jsonb_build_object(
    'valid', array_length(_blockers, 1) IS NULL,
    'current_status', _current_status,
    'new_status', _new_status,
    'warnings', to_jsonb(_warnings),
    'blockers', to_jsonb(_blockers),
    'requires_override', coalesce(array_length(_warnings, 1), 0) > 0
                         OR coalesce(array_length(_blockers, 1), 0) > 0
  );
END;
$function$;
"""


def upgrade() -> None:
    op.execute(VALIDATOR_SQL)


def downgrade() -> None:
    op.execute("DROP FUNCTION IF EXISTS validate_order_status_transition(varchar, varchar)")
