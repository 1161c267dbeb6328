"""
Fake Modbus endpoints for tests: a socket and a serial port that answer
requests through a responder callback
"""

import socket
import struct

from modmaster.crc import append_crc


class FakeSocket:
    """
    Stand-in for a connected TCP socket.

    `responder(request_bytes)` returns the bytes the device sends back, or
    None to simulate a silent device (recv then times out).
    """

    def __init__(self, responder):
        self.responder = responder
        self.sent = []
        self.recv_sizes = []
        self.buffer = bytearray()
        self.timeout = None
        self.closed = False

    def settimeout(self, timeout):
        self.timeout = timeout

    def sendall(self, data):
        self.sent.append(bytes(data))
        response = self.responder(bytes(data))
        if response:
            self.buffer.extend(response)

    def recv(self, size):
        self.recv_sizes.append(size)
        if not self.buffer:
            raise socket.timeout('timed out')
        chunk = bytes(self.buffer[:size])
        del self.buffer[:size]
        return chunk

    def close(self):
        self.closed = True


class FakeSerial:
    """Stand-in for serial.Serial with an in-memory receive buffer"""

    def __init__(self, responder):
        self.responder = responder
        self.written = []
        self.buffer = bytearray()
        self.is_open = True
        self.resets = 0

    @property
    def in_waiting(self):
        return len(self.buffer)

    def reset_input_buffer(self):
        self.resets += 1
        self.buffer.clear()

    def write(self, data):
        self.written.append(bytes(data))
        response = self.responder(bytes(data))
        if response:
            self.buffer.extend(response)
        return len(data)

    def flush(self):
        pass

    def read(self, size=1):
        chunk = bytes(self.buffer[:size])
        del self.buffer[:size]
        return chunk

    def close(self):
        self.is_open = False


def tcp_responder(handler):
    """
    Wrap a PDU handler into an MBAP responder.

    `handler(unit_id, function_code, data)` returns the response PDU
    (function code + data) or None for no answer.
    """
    def respond(request):
        tid, _, _, unit_id = struct.unpack('>HHHB', request[:7])
        pdu = handler(unit_id, request[7], request[8:])
        if pdu is None:
            return None
        return struct.pack('>HHHB', tid, 0, len(pdu) + 1, unit_id) + pdu
    return respond


def rtu_responder(handler):
    """Wrap a PDU handler into an RTU responder that appends a valid CRC"""
    def respond(request):
        pdu = handler(request[0], request[1], request[2:-2])
        if pdu is None:
            return None
        return append_crc(bytes([request[0]]) + pdu)
    return respond


def echo_handler(unit_id, function_code, data):
    """Answer writes with the standard echo (address + value/quantity)"""
    return bytes([function_code]) + data[:4]
