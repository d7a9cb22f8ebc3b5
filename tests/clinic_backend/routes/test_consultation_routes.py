import json

import pytest
from fastapi import HTTPException

from clinic_backend.auth.dependencies import PROVIDER_ROLE, REQUESTER_ROLE, Actor, require_provider
from clinic_backend.core.exceptions import ValidationError
from clinic_backend.models.consultation import ConsultationStatus
from clinic_backend.routes.consultation_routes import (
    AddRatingRequest,
    CompleteConsultationRequest,
    add_rating,
    complete_consultation,
    list_my_consultations,
    mark_no_show,
    start_consultation,
)

REQUESTER = Actor(id='requester-1', role=REQUESTER_ROLE)


def response_json(response) -> dict:
    return json.loads(response.body)


@pytest.fixture
def provider_actor(provider) -> Actor:
    return Actor(id=provider.id, role=PROVIDER_ROLE)


@pytest.fixture
def consultation(services, make_slot):
    slot = make_slot(hour=10)
    return services.bookings.book_consultation(REQUESTER.id, slot.id).consultation


def test_require_provider_rejects_requesters() -> None:
    with pytest.raises(HTTPException) as exception_info:
        require_provider(REQUESTER)

    assert exception_info.value.status_code == 403


def test_full_lifecycle_through_routes(services, consultation, provider_actor, providers, provider) -> None:
    start_consultation(consultation.id, None, provider_actor, services)
    completed = complete_consultation(
        consultation.id,
        CompleteConsultationRequest(diagnosis=' sprain ', notes=''),
        None,
        provider_actor,
        services,
    )
    rated = add_rating(consultation.id, AddRatingRequest(rating=5, feedback='great'), None, REQUESTER, services)

    assert response_json(completed)['diagnosis'] == 'sprain'
    assert response_json(completed)['notes'] is None
    assert response_json(rated)['rating'] == 5
    assert providers.get(provider.id).total_consultations == 1


def test_rating_out_of_range_is_a_business_error(services, consultation, provider_actor) -> None:
    start_consultation(consultation.id, None, provider_actor, services)
    complete_consultation(consultation.id, CompleteConsultationRequest(), None, provider_actor, services)

    with pytest.raises(ValidationError):
        add_rating(consultation.id, AddRatingRequest(rating=6), None, REQUESTER, services)


def test_repeated_start_with_same_key_replays(services, consultation, provider_actor) -> None:
    first = start_consultation(consultation.id, 'start-1', provider_actor, services)
    second = start_consultation(consultation.id, 'start-1', provider_actor, services)

    assert response_json(second) == response_json(first)
    assert response_json(second)['status'] == 'in_progress'


def test_start_key_reused_on_no_show_is_not_replayed(services, consultation, provider_actor) -> None:
    start_consultation(consultation.id, 'shared', provider_actor, services)

    with pytest.raises(ValidationError):
        mark_no_show(consultation.id, 'shared', provider_actor, services)


def test_mark_no_show_route(services, consultation, provider_actor) -> None:
    response = mark_no_show(consultation.id, None, provider_actor, services)

    assert response_json(response)['status'] == 'no_show'


def test_list_my_consultations_uses_actor_role(services, consultation, provider_actor) -> None:
    as_requester = list_my_consultations(None, 1, 20, REQUESTER, services)
    as_provider = list_my_consultations(ConsultationStatus.CANCELLED, 1, 20, provider_actor, services)

    assert [item.id for item in as_requester.data] == [consultation.id]
    assert as_requester.total_pages == 1
    assert as_provider.total == 0
