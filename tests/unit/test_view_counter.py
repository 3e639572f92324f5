"""Tests for atomic view admission.

Validates:
  - Unlimited bundles always admit.
  - With max_views=N and N+k concurrent callers exactly N are admitted.
  - The invariant also holds when callers run on separate threads.
  - Reads stay consistent while other threads insert bundles.
  - A vanished bundle raises NotFound.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import ThreadPoolExecutor

import pytest

from docgate.app.errors import NotFound
from docgate.app.inmemory import InMemoryBundleRepository
from docgate.app.sharing.model import AccessControl, Bundle
from docgate.app.sharing.view_counter import ViewCounter


async def _seed(repo: InMemoryBundleRepository, max_views: int, current_views: int = 0) -> Bundle:
    return await repo.create(Bundle(
        id='',
        public_id=f'pub-{max_views}-{current_views}',
        title='Counted',
        creator_id='user_1',
        access=AccessControl(max_views=max_views, current_views=current_views),
    ))


class TestAdmitView:
    @pytest.mark.asyncio
    async def test_unlimited_always_admits(self, repo):
        bundle = await _seed(repo, max_views=0)
        counter = ViewCounter(repo)
        for expected in range(1, 6):
            result = await counter.admit_view(bundle.id)
            assert result.admitted
            assert result.new_count == expected

    @pytest.mark.asyncio
    async def test_rejects_at_quota(self, repo):
        bundle = await _seed(repo, max_views=2, current_views=1)
        counter = ViewCounter(repo)
        first = await counter.admit_view(bundle.id)
        second = await counter.admit_view(bundle.id)
        assert (first.admitted, first.new_count) == (True, 2)
        assert (second.admitted, second.new_count) == (False, 2)

    @pytest.mark.asyncio
    async def test_missing_bundle(self, repo):
        with pytest.raises(NotFound):
            await ViewCounter(repo).admit_view('bnd_missing')


class TestConcurrency:
    @pytest.mark.asyncio
    async def test_exactly_n_admitted_under_gather(self, repo):
        bundle = await _seed(repo, max_views=5)
        counter = ViewCounter(repo)

        results = await asyncio.gather(*(counter.admit_view(bundle.id) for _ in range(25)))

        assert sum(r.admitted for r in results) == 5
        assert sorted(r.new_count for r in results if r.admitted) == [1, 2, 3, 4, 5]
        stored = await repo.get(bundle.id)
        assert stored.access.current_views == 5

    @pytest.mark.asyncio
    async def test_exactly_n_admitted_across_threads(self, repo):
        bundle = await _seed(repo, max_views=7)

        def admit_once():
            return asyncio.run(repo.admit_view(bundle.id))

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: admit_once(), range(40)))

        assert sum(r.admitted for r in results) == 7
        stored = await repo.get(bundle.id)
        assert stored.access.current_views == 7

    @pytest.mark.asyncio
    async def test_reads_while_other_threads_insert(self, repo):
        bundle = await _seed(repo, max_views=0)

        def insert(n):
            return asyncio.run(repo.create(Bundle(
                id='', public_id=f'pub-extra-{n}', title='Extra', creator_id='user_1',
            )))

        def read(_):
            async def scan():
                await repo.get_by_public_id('pub-missing')
                await repo.list_for_creator('user_1', limit=100)
                await repo.find_by_document_set('user_1', bundle.document_set_key)
                return await repo.list_bundles(search='extra', limit=500)
            return asyncio.run(scan())

        with ThreadPoolExecutor(max_workers=8) as pool:
            writes = [pool.submit(insert, n) for n in range(200)]
            reads = [pool.submit(read, n) for n in range(200)]
            for future in writes + reads:
                future.result()

        assert len(await repo.list_bundles(limit=500)) == 201
