# poolcrm/calendar/routes.py

from flask import Blueprint, request

from poolcrm.auth import current_principal
from poolcrm.calendar import actions
from poolcrm.results import envelope_response

bp = Blueprint('calendar', __name__)


def _json():
    return request.get_json(silent=True) or {}


def _args():
    return {k: v for k, v in request.args.items() if v != ''}


@bp.route('/', methods=['GET'])
def events_in_range():
    """Calendar viewport.

    Either ``start``/``end`` UTC instants or ``from``/``to`` local days
    (``YYYY-MM-DD``, inclusive) in the business timezone.
    """
    return envelope_response(actions.get_events_in_range(current_principal(), _args()))


@bp.route('/events', methods=['GET'])
def list_events():
    return envelope_response(actions.list_events(current_principal(), _args()))


@bp.route('/events', methods=['POST'])
def create_event():
    result = actions.create_event(current_principal(), _json())
    return envelope_response(result, success_status=201)


@bp.route('/events/defaults', methods=['GET'])
def default_times():
    return envelope_response(actions.default_event_times(current_principal()))


@bp.route('/events/<event_id>', methods=['GET'])
def get_event(event_id):
    return envelope_response(actions.get_event(current_principal(), {'id': event_id}))


@bp.route('/events/<event_id>', methods=['PATCH'])
def update_event(event_id):
    payload = dict(_json(), id=event_id)
    return envelope_response(actions.update_event(current_principal(), payload))


@bp.route('/events/<event_id>/reschedule', methods=['POST'])
def reschedule_event(event_id):
    payload = dict(_json(), id=event_id)
    return envelope_response(actions.reschedule_event(current_principal(), payload))


@bp.route('/events/<event_id>/cancel', methods=['POST'])
def cancel_event(event_id):
    payload = dict(_json(), id=event_id)
    return envelope_response(actions.cancel_event(current_principal(), payload))


@bp.route('/events/<event_id>/complete', methods=['POST'])
def complete_event(event_id):
    payload = dict(_json(), id=event_id)
    return envelope_response(actions.complete_event(current_principal(), payload))


@bp.route('/events/<event_id>', methods=['DELETE'])
def delete_event(event_id):
    return envelope_response(actions.delete_event(current_principal(), {'id': event_id}))


@bp.route('/customers/<customer_id>/events', methods=['GET'])
def customer_events(customer_id):
    payload = dict(_args(), customer_id=customer_id)
    return envelope_response(actions.get_customer_events(current_principal(), payload))
