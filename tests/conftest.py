import asyncio
from collections import Counter

import pytest
from aiohttp import web, WSMsgType
from aiohttp.test_utils import TestServer

import domestique

TOKEN = 'token-alice'


def envelope(payload, error=0, message=None):
    data = {'error': error, 'payload': payload}
    if message is not None:
        data['message'] = message
    return data


def message_payload(message_id, channel_id='c1', guild_id='g1', author_id='u2', content='hello'):
    return {
        'messageId': message_id,
        'authorId': author_id,
        'guildId': guild_id,
        'channelId': channel_id,
        'timestamp': 1700000000000,
        'content': content,
    }


async def wait_until(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError('condition was not met in time')
        await asyncio.sleep(0.01)


class FakeChatServer:
    """A local chat service speaking the REST envelope and the live websocket."""

    def __init__(self):
        self.users = {
            'u1': {'username': 'alice', 'displayName': 'Alice', 'verified': True, 'isAdmin': False},
            'u2': {'username': 'bob', 'displayName': 'Bob', 'verified': False, 'isAdmin': True},
        }
        self.guilds = {
            'g1': {'id': 'g1', 'name': 'Lounge', 'topic': 'chatting', 'channelIds': ['c1', 'c2']},
        }
        self.channels = {
            'c1': {'id': 'c1', 'name': 'general', 'topic': 'anything', 'guildId': 'g1'},
            'c2': {'id': 'c2', 'name': 'random', 'topic': '', 'guildId': 'g1'},
        }
        self.history = {
            'c1': [message_payload('m1', content='first'), message_payload('m2', author_id='u1', content='second')],
            'c2': [],
        }
        self.hits = Counter()
        self.queue_order = []
        self.posted = []
        self.sockets = []
        self.ws_tokens = []
        # number of 429 answers the queue endpoint gives before succeeding
        self.rate_limits = 0
        self.rate_limit_ms = 500
        self.send_auth_status = True

        app = web.Application()
        app.router.add_post('/api/v0/auth/login', self.login)
        app.router.add_get('/api/v0/data/user/{id}', self.user)
        app.router.add_get('/api/v0/data/guild/{id}', self.guild)
        app.router.add_get('/api/v0/data/channel/{id}', self.channel)
        app.router.add_get('/api/v0/data/messages/{id}', self.messages)
        app.router.add_post('/api/v0/message/post', self.post)
        app.router.add_get('/api/v0/queue/{name}', self.queue)
        app.router.add_get('/api/v0/live/ws', self.live)
        self.server = TestServer(app)

    async def __aenter__(self):
        await self.server.start_server()
        return self

    async def __aexit__(self, *exc_info):
        for ws in self.sockets:
            await ws.close()
        await self.server.close()

    @property
    def api_url(self):
        return str(self.server.make_url('/'))

    @property
    def ws_url(self):
        return str(self.server.make_url('/api/v0/live/ws').with_scheme('ws'))

    def client(self, **options):
        options.setdefault('api_url', self.api_url)
        options.setdefault('ws_url', self.ws_url)
        options.setdefault('handshake_timeout', 1.0)
        options.setdefault('reconnect_delay', 0.05)
        return domestique.Client(**options)

    def http(self, token=TOKEN):
        http = domestique.HTTPClient(self.api_url)
        http.token = token
        return http

    def _authorized(self, request):
        return request.headers.get('authorization') == TOKEN

    async def login(self, request):
        self.hits['login'] += 1
        body = await request.json()
        if body == {'username': 'alice', 'password': 'hunter2'}:
            return web.json_response(envelope({'token': TOKEN, 'userId': 'u1'}))
        return web.json_response(envelope(None, error=1, message='invalid credentials'), status=403)

    async def user(self, request):
        user_id = request.match_info['id']
        self.hits['user'] += 1
        if user_id not in self.users:
            return web.json_response(envelope(None, error=4, message='unknown user'))
        return web.json_response(envelope(self.users[user_id]))

    async def guild(self, request):
        self.hits['guild'] += 1
        if not self._authorized(request):
            return web.Response(status=401, text='unauthorized')
        guild_id = request.match_info['id']
        if guild_id not in self.guilds:
            return web.json_response(envelope(None, error=4, message='unknown guild'))
        return web.json_response(envelope(self.guilds[guild_id]))

    async def channel(self, request):
        self.hits['channel'] += 1
        if not self._authorized(request):
            return web.Response(status=401, text='unauthorized')
        channel_id = request.match_info['id']
        if channel_id not in self.channels:
            return web.Response(status=404, text='no such channel')
        return web.json_response(envelope(self.channels[channel_id]))

    async def messages(self, request):
        self.hits['messages'] += 1
        if not self._authorized(request):
            return web.Response(status=401, text='unauthorized')
        return web.json_response(envelope({'messages': self.history.get(request.match_info['id'], [])}))

    async def post(self, request):
        self.hits['post'] += 1
        body = await request.json()
        if not body.get('content'):
            return web.json_response(envelope(None, error=2, message='empty message'), status=400)
        self.posted.append(body)
        created = message_payload(f'p{len(self.posted)}', body['channelId'], body['guildId'], 'u1', body['content'])
        return web.json_response(envelope(created))

    async def queue(self, request):
        self.hits['queue'] += 1
        self.queue_order.append(request.match_info['name'])
        if self.rate_limits:
            self.rate_limits -= 1
            return web.Response(
                status=429,
                text='slow down',
                headers={'X-Timeout-Remaining-Milliseconds': str(self.rate_limit_ms)},
            )
        return web.json_response({'name': request.match_info['name']})

    async def live(self, request):
        token = request.headers.get('Sec-WebSocket-Protocol', '')
        ws = web.WebSocketResponse(protocols=(token,) if token else ())
        await ws.prepare(request)
        self.ws_tokens.append(token)
        self.sockets.append(ws)

        if self.send_auth_status:
            ok = token == TOKEN
            payload = {'userId': 'u1' if ok else None, 'success': ok}
            if not ok:
                payload['error'] = 'invalid token'
            await ws.send_json({'type': 'authStatus', 'payload': payload})

        async for msg in ws:
            if msg.type is WSMsgType.ERROR:
                break
        return ws

    async def send(self, packet_type, payload=None):
        ws = self.sockets[-1]
        await ws.send_json({'type': packet_type, 'payload': payload or {}})

    async def sync(self, guilds=('g1',), channels=('c1',)):
        for guild_id in guilds:
            await self.send('guildAvailable', {'uuid': guild_id})
        for channel_id in channels:
            await self.send('channelAvailable', {'uuid': channel_id})
        await self.send('serverFinished')

    async def drop(self):
        await self.sockets[-1].close()


@pytest.fixture
def chat_server():
    return FakeChatServer()
