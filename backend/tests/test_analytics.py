"""
Tests for watch-time recording and lead capture.
"""

import math

import pytest

from smartflow_server.schemas.entities import FlowSession, JourneyStep, UserJourney, WatchTimeRecord
from smartflow_server.services.analytics import (
    list_leads,
    load_watch_time_summary,
    record_watch_time,
    submit_lead,
    summarize_watch_time,
)
from tests.fakes import COMPANY, INTERACTIVE_SESSION, seeded_store


class TestWatchTime:
    @pytest.mark.asyncio
    async def test_record_inserts_row(self):
        store = seeded_store()
        record = await record_watch_time(store, INTERACTIVE_SESSION, 42.5)
        assert record.watch_time == 42.5
        assert store.tables['watch_time'][-1]['session_id'] == INTERACTIVE_SESSION

    @pytest.mark.asyncio
    @pytest.mark.parametrize('bad', [-1.0, math.inf, math.nan])
    async def test_rejects_invalid_seconds(self, bad):
        store = seeded_store()
        with pytest.raises(ValueError):
            await record_watch_time(store, INTERACTIVE_SESSION, bad)
        assert store.tables['watch_time'] == []

    def test_summary(self):
        records = [WatchTimeRecord(session_id='s', watch_time=t) for t in (10.0, 30.0, 20.0)]
        summary = summarize_watch_time('s', records)
        assert summary.views == 3
        assert summary.total_seconds == 60.0
        assert summary.average_seconds == 20.0
        assert summary.longest_seconds == 30.0

    def test_empty_summary(self):
        summary = summarize_watch_time('s', [])
        assert summary.to_dict() == {
            'session_id': 's',
            'views': 0,
            'total_seconds': 0.0,
            'average_seconds': 0.0,
            'longest_seconds': 0.0,
        }

    @pytest.mark.asyncio
    async def test_load_summary_filters_by_session(self):
        store = seeded_store()
        await record_watch_time(store, INTERACTIVE_SESSION, 5)
        await record_watch_time(store, INTERACTIVE_SESSION, 15)
        await record_watch_time(store, 'other', 100)
        summary = await load_watch_time_summary(store, INTERACTIVE_SESSION)
        assert summary.views == 2
        assert summary.longest_seconds == 15


class TestLeads:
    @pytest.mark.asyncio
    async def test_submit_lead_with_journey(self):
        store = seeded_store()
        session = FlowSession(id=INTERACTIVE_SESSION, associated_with=COMPANY)
        journey = UserJourney(session_id=INTERACTIVE_SESSION, steps=[
            JourneyStep(video_id='v1', video_title='Intro', action='play'),
            JourneyStep(video_id='v1', video_title='Intro', action='answer', element_id='a1', element_label='Pricing'),
        ])
        lead = await submit_lead(store, session, 'Contact', {'email': 'x@y.z'}, journey)

        assert lead.company_id == COMPANY
        assert lead.form_data == {'email': 'x@y.z'}
        assert lead.journey_summ == 'Intro > answered "Pricing"'
        assert lead.user_journey.steps[1].element_id == 'a1'
        stored = store.tables['leads'][-1]
        assert stored['user_journey']['session_id'] == INTERACTIVE_SESSION

    @pytest.mark.asyncio
    async def test_submit_lead_without_journey(self):
        store = seeded_store()
        session = FlowSession(id=INTERACTIVE_SESSION)
        lead = await submit_lead(store, session, 'Contact', {})
        assert lead.user_journey is None
        assert lead.journey_summ is None

    @pytest.mark.asyncio
    async def test_list_leads_newest_first(self):
        store = seeded_store()
        session = FlowSession(id=INTERACTIVE_SESSION, associated_with=COMPANY)
        first = await submit_lead(store, session, 'First', {})
        second = await submit_lead(store, session, 'Second', {})
        await submit_lead(store, FlowSession(id='elsewhere', associated_with='co-2'), 'Other', {})

        leads = await list_leads(store, COMPANY)
        assert [l.id for l in leads] == [second.id, first.id]
        assert await list_leads(store, COMPANY, session_id='missing') == []
