"""Estimate actions returning result envelopes."""

from poolcrm.auth import require_admin
from poolcrm.estimates.schemas import (
    CreateEstimateInput,
    EditLineItemInput,
    EstimateIdInput,
    ListEstimatesInput,
    NewLineItemInput,
    RemoveLineItemInput,
    UpdateEstimateInput,
    UpdateStatusInput,
)
from poolcrm.estimates.service import EstimateService
from poolcrm.errors import ValidationError
from poolcrm.results import action
from poolcrm.revalidation import revalidate_paths
from poolcrm.schemas import validate

ESTIMATES_PATH = '/admin/estimates'


def estimate_path(estimate_id):
    return f'{ESTIMATES_PATH}/{estimate_id}'


def _invalidate(estimate):
    revalidate_paths(
        ESTIMATES_PATH,
        estimate_path(estimate['id']),
        f"/admin/customers/{estimate['customer_id']}",
    )


@action('Create estimate')
def create_estimate(principal, payload):
    admin = require_admin(principal)
    data = validate(CreateEstimateInput, payload)
    estimate = EstimateService().create(data, admin.admin_id)
    _invalidate(estimate)
    return estimate


@action('Fetch estimate')
def get_estimate(principal, payload):
    require_admin(principal)
    data = validate(EstimateIdInput, payload)
    return EstimateService().get_by_id(data.id)


@action('Fetch estimate by number')
def get_estimate_by_number(principal, payload):
    require_admin(principal)
    number = (payload or {}).get('estimate_number')
    if not isinstance(number, str) or not number.strip():
        raise ValidationError('Estimate number is required')
    return EstimateService().get_by_number(number.strip().upper())


@action('List estimates')
def list_estimates(principal, payload):
    require_admin(principal)
    data = validate(ListEstimatesInput, payload)
    return EstimateService().list(data)


@action('Update estimate')
def update_estimate(principal, payload):
    require_admin(principal)
    data = validate(UpdateEstimateInput, payload)
    estimate = EstimateService().update(data)
    _invalidate(estimate)
    return estimate


@action('Update estimate status')
def update_estimate_status(principal, payload):
    require_admin(principal)
    data = validate(UpdateStatusInput, payload)
    estimate = EstimateService().update_status(data.id, data.status, data.version)
    _invalidate(estimate)
    return estimate


@action('Add line item')
def add_line_item(principal, payload):
    require_admin(principal)
    data = validate(NewLineItemInput, payload)
    estimate = EstimateService().add_line_item(data)
    _invalidate(estimate)
    return estimate


@action('Edit line item')
def edit_line_item(principal, payload):
    require_admin(principal)
    data = validate(EditLineItemInput, payload)
    estimate = EstimateService().edit_line_item(data)
    _invalidate(estimate)
    return estimate


@action('Remove line item')
def remove_line_item(principal, payload):
    require_admin(principal)
    data = validate(RemoveLineItemInput, payload)
    estimate = EstimateService().remove_line_item(data)
    _invalidate(estimate)
    return estimate


@action('Duplicate estimate')
def duplicate_estimate(principal, payload):
    admin = require_admin(principal)
    data = validate(EstimateIdInput, payload)
    estimate = EstimateService().duplicate(data.id, admin.admin_id)
    _invalidate(estimate)
    return estimate


@action('Delete estimate')
def delete_estimate(principal, payload):
    require_admin(principal)
    data = validate(EstimateIdInput, payload)
    deleted = EstimateService().delete(data.id)
    _invalidate(deleted)
    return {'id': deleted['id'], 'deleted': True}
