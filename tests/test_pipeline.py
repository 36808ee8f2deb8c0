"""
Tests for brandsnap/pipeline.py.
"""

import asyncio
import json

import pytest

from brandsnap.errors import EnrichmentError
from brandsnap.llm import BrandVoiceEnricher
from brandsnap.models import CrawlOptions, StructuredData
from brandsnap.persistence import BrandRepository
from brandsnap.pipeline import DesignTokenPipeline, ResultCache, voice_embedding_text

from fakes import FakeCrawler, FakeProvider, make_crawl_result


VOICE = {'tone': 'friendly', 'personality': ['warm', 'helpful'], 'guidelines': {'do': 'smile'}, 'themes': ['care']}
COMPANY = {
    'companyName': 'Acme',
    'legalName': 'Acme Inc.',
    'description': 'Widget maker',
    'industry': 'Manufacturing',
    'metadata': {'founded': '1949'},
}


def _responder(prompt, system):
    if 'design systems expert' in system:
        keys = [row['tokenKey'] for row in json.loads(prompt.split('Tokens:\n')[1].split('\n\nReturn')[0])]
        return json.dumps({'tokens': [
            {'originalKey': k, 'normalizedKey': f'norm.{k}', 'category': 'other', 'value': 'x'}
            for k in keys
        ]})
    if 'company information' in system:
        return json.dumps(COMPANY)
    return json.dumps(VOICE)


class Clock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _pipeline(repository=None, crawler=None, clock=None, **kwargs):
    provider = FakeProvider(_responder)
    pipeline = DesignTokenPipeline(
        crawler or FakeCrawler(),
        BrandVoiceEnricher(provider),
        repository=repository,
        clock=clock or Clock(),
        **kwargs,
    )
    return pipeline, provider


@pytest.fixture
def repo(tmp_path):
    repository = BrandRepository(f"sqlite:///{tmp_path / 'brands.db'}")
    yield repository
    repository.close()


class TestResultCache:

    def test_expiry(self):
        clock = Clock()
        cache = ResultCache(ttl=10, clock=clock)
        cache.set('k', {'v': 1})
        assert cache.get('k') == {'v': 1}
        clock.now += 10
        assert cache.get('k') is None
        assert len(cache) == 0

    def test_set_sweeps_expired_entries(self):
        clock = Clock()
        cache = ResultCache(ttl=1, clock=clock)
        for i in range(1000):
            cache.set(f'crawl:https://site{i}.test/', {'i': i})
        clock.now += 10000
        cache.set('crawl:https://fresh.test/', {'i': -1})
        assert len(cache) == 1
        assert cache.get('crawl:https://fresh.test/') == {'i': -1}

    def test_sweep_keeps_live_entries(self):
        clock = Clock()
        cache = ResultCache(ttl=10, clock=clock)
        cache.set('old', 1)
        clock.now += 5
        cache.set('new', 2)
        clock.now += 6
        assert cache.sweep() == 1
        assert cache.get('new') == 2

    def test_zero_ttl_disables(self):
        cache = ResultCache(ttl=0)
        cache.set('k', 1)
        assert cache.get('k') is None


def test_embedding_text():
    assert voice_embedding_text(VOICE) == 'friendly warm,helpful ["care"]'


class TestAnalyzeWithoutStore:
    """Response built from in-memory results."""

    def test_response_shape(self):
        pipeline, provider = _pipeline()
        response = asyncio.run(pipeline.analyze('https://acme.test/'))

        assert response['site']['id'] is None
        assert response['site']['domain'] == 'acme.test'
        assert response['site']['title'] == 'Acme Widgets'
        assert response['companyInfo']['name'] == 'Acme'
        assert response['companyInfo']['emails'] == ['hello@acme.test']
        assert response['companyInfo']['socialLinks'][0]['platform'] == 'twitter'
        assert response['brandVoice'] == {'tone': 'friendly', 'personality': ['warm', 'helpful'], 'themes': ['care']}
        assert response['stats']['totalProducts'] == 1
        assert 'fromCache' not in response

        # css variable, 2 colors, 1 font, 2 spacing values
        assert response['stats']['totalTokens'] == 6
        assert response['designTokens'][0]['token_key'] == 'norm.--brand-primary'
        assert response['designTokens'][0]['meta']['originalKey'] == '--brand-primary'
        assert provider.embedded == ['friendly warm,helpful ["care"]']

    def test_normalizes_at_most_max_tokens(self):
        variables = {f'--v{i}': str(i) for i in range(80)}
        crawler = FakeCrawler(lambda url: make_crawl_result(url, css_variables=variables))
        pipeline, provider = _pipeline(crawler=crawler)
        response = asyncio.run(pipeline.analyze('https://acme.test/'))

        token_prompt = next(c['prompt'] for c in provider.calls if 'design systems expert' in c['system'])
        assert token_prompt.count('"tokenKey"') == 50
        assert response['stats']['totalTokens'] == 50
        assert len(response['designTokens']) == 20

    def test_enrichment_failure_propagates(self):
        pipeline = DesignTokenPipeline(FakeCrawler(), BrandVoiceEnricher(FakeProvider(lambda p, s: 'oops')))
        with pytest.raises(EnrichmentError):
            asyncio.run(pipeline.analyze('https://acme.test/'))
        assert len(pipeline.cache) == 0


class TestCache:
    """Cached responses are flagged and skip the crawl."""

    def test_second_call_hits_cache(self):
        crawler = FakeCrawler()
        pipeline, _ = _pipeline(crawler=crawler)

        async def run():
            first = await pipeline.analyze('https://acme.test/')
            second = await pipeline.analyze('https://acme.test/')
            return first, second

        first, second = asyncio.run(run())
        assert len(crawler.calls) == 1
        assert second['fromCache'] is True
        assert second['site'] == first['site']

    def test_skip_cache(self):
        crawler = FakeCrawler()
        pipeline, _ = _pipeline(crawler=crawler)

        async def run():
            await pipeline.analyze('https://acme.test/')
            return await pipeline.analyze('https://acme.test/', CrawlOptions(skip_cache=True))

        response = asyncio.run(run())
        assert len(crawler.calls) == 2
        assert 'fromCache' not in response

    def test_expired_entry_recrawls(self):
        crawler = FakeCrawler()
        clock = Clock()
        pipeline, _ = _pipeline(crawler=crawler, clock=clock, cache_ttl=60)

        asyncio.run(pipeline.analyze('https://acme.test/'))
        clock.now += 61
        asyncio.run(pipeline.analyze('https://acme.test/'))
        assert len(crawler.calls) == 2


class TestAnalyzeWithStore:
    """Results land in the relational store."""

    def test_persists_everything(self, repo):
        pipeline, _ = _pipeline(repository=repo)
        response = asyncio.run(pipeline.analyze('https://acme.test/'))

        site_id = response['site']['id']
        assert site_id is not None
        assert response['stats']['crawledAt']

        data = repo.get_complete_site_data(site_id)
        assert data['site']['description'] == 'Widgets for everyone'
        assert data['site']['screenshot'] == 'aGVsbG8='
        assert data['companyInfo']['legal_name'] == 'Acme Inc.'
        assert data['companyInfo']['structured_json']['industry'] == 'Manufacturing'
        assert data['companyInfo']['structured_json']['founded'] == '1949'
        assert len(data['designTokens']) == 6
        assert all(t['source'] == 'normalized' for t in data['designTokens'])
        assert data['products'][0]['slug'] == 'rocket-skates'
        assert json.loads(data['brandVoice']['summary'])['tone'] == 'friendly'
        assert data['brandVoice']['embedding'] == [0.1, 0.2, 0.3]

    def test_recrawl_updates_site(self, repo):
        pipeline, _ = _pipeline(repository=repo)

        async def run():
            first = await pipeline.analyze('https://acme.test/')
            second = await pipeline.analyze('https://acme.test/', CrawlOptions(skip_cache=True))
            return first, second

        first, second = asyncio.run(run())
        assert first['site']['id'] == second['site']['id']

    def test_description_falls_back_to_company(self, repo):
        crawler = FakeCrawler(lambda url: make_crawl_result(url, structured_data=StructuredData(meta={'title': 'Acme'})))
        pipeline, _ = _pipeline(repository=repo, crawler=crawler)
        response = asyncio.run(pipeline.analyze('https://acme.test/'))
        assert response['site']['description'] == 'Widget maker'
        assert response['stats']['totalProducts'] == 0
