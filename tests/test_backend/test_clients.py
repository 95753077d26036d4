"""
Unit tests for backend/clients.py - Electrum JSON-RPC client with mocked streams.
"""

import json
import unittest
from unittest.mock import AsyncMock, Mock

from tanos_lib.backend.clients import ElectrumClient, ElectrumRPCError
from tests.fixtures import run


def _connected_client(*responses):
    client = ElectrumClient('localhost', 50001, use_ssl=False, timeout=1.0)
    client.reader = Mock()
    client.reader.readline = AsyncMock(side_effect=list(responses))
    client.writer = Mock()
    client.writer.drain = AsyncMock()
    return client


def _response(request_id, result=None, error=None):
    payload = {'jsonrpc': '2.0', 'id': request_id}
    if error is not None:
        payload['error'] = error
    else:
        payload['result'] = result
    return (json.dumps(payload) + '\n').encode()


class TestElectrumClient(unittest.TestCase):
    """Test request framing and error handling."""

    def test_request_framing(self):
        client = _connected_client(_response(1, ['Fulcrum 1.9', '1.4']))

        version = run(client.get_server_version())

        self.assertEqual(version, ['Fulcrum 1.9', '1.4'])
        sent = client.writer.write.call_args[0][0]
        self.assertTrue(sent.endswith(b'\n'))
        request = json.loads(sent)
        self.assertEqual(request['method'], 'server.version')
        self.assertEqual(request['params'], ['tanos', '1.4'])
        self.assertEqual(request['id'], 1)

    def test_request_ids_increase(self):
        client = _connected_client(_response(1, []), _response(2, 'ab' * 32))

        run(client.get_scripthash_listunspent('cd' * 32))
        txid = run(client.broadcast_transaction('0200'))

        self.assertEqual(txid, 'ab' * 32)
        last = json.loads(client.writer.write.call_args[0][0])
        self.assertEqual(last['id'], 2)
        self.assertEqual(last['method'], 'blockchain.transaction.broadcast')

    def test_rpc_error(self):
        client = _connected_client(_response(1, error={'code': 1, 'message': 'bad-txns-inputs-missingorspent'}))
        with self.assertRaises(ElectrumRPCError) as ctx:
            run(client.broadcast_transaction('0200'))
        self.assertIn('missingorspent', str(ctx.exception))

    def test_garbage_response(self):
        client = _connected_client(b'not json\n')
        with self.assertRaises(ElectrumRPCError):
            run(client.get_server_version())

    def test_closed_connection(self):
        client = _connected_client(b'')
        with self.assertRaises(ConnectionError):
            run(client.get_server_version())

    def test_not_connected(self):
        client = ElectrumClient('localhost', 50001)
        self.assertFalse(client.is_connected)
        with self.assertRaises(ConnectionError):
            run(client.get_server_version())


if __name__ == '__main__':
    unittest.main()
