import contextlib
import io
import os
import tempfile
import unittest

import rocksoft_crc


CRC32 = ('width=32 poly=0x04c11db7 init=0xffffffff refin=true refout=true '
         'xorout=0xffffffff')
CRC32_POSIX = 'width=32 poly=0x04c11db7 init=0 refin=false refout=false xorout=0xffffffff'


class TestCommandLine(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self._tmp.cleanup)

    def _write(self, name: str, data: bytes) -> str:
        path = os.path.join(self._tmp.name, name)
        with open(path, 'wb') as f:
            f.write(data)
        return path

    def _run(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            with self.assertRaises(SystemExit) as cm:
                rocksoft_crc._main(list(argv))
        return cm.exception.code, out.getvalue(), err.getvalue()

    def test_quiet_check_values(self):
        path = self._write('check.bin', b'123456789')
        code, out, _ = self._run('-qc', CRC32, path)
        self.assertEqual(code, 0)
        self.assertEqual(out, '0xcbf43926\n')
        code, out, _ = self._run('-q', '-c', CRC32_POSIX, path)
        self.assertEqual(code, 0)
        self.assertEqual(out, '0x765e7680\n')

    def test_verbose_output(self):
        path = self._write('check.bin', b'123456789')
        code, out, _ = self._run('-c', CRC32, path)
        self.assertEqual(code, 0)
        self.assertEqual(out.splitlines(), [
            'CrcTable(width=32, poly=0x04c11db7, init=0xffffffff, refin=True, '
            'refout=True, xorout=0xffffffff)',
            'number of bytes processed: 9',
            'crc: 0xcbf43926',
        ])

    def test_output_formats(self):
        path = self._write('check.bin', b'123456789')
        _, out, _ = self._run('-q', '-f', 'hex', '-c', CRC32, path)
        self.assertEqual(out, 'cbf43926\n')
        _, out, _ = self._run('-q', '-f', 'decimal', '-c', CRC32, path)
        self.assertEqual(out, '%d\n' % 0xcbf43926)
        _, out, _ = self._run('-q', '-c', 'width=8 poly=0x07', path)
        self.assertEqual(out, '0xf4\n')

    def test_hex_input(self):
        path = self._write('check.hex', b'31 32 33\n34353637\t38\n39\n')
        code, out, _ = self._run('-q', '-i', 'hex', '-c', CRC32, path)
        self.assertEqual(code, 0)
        self.assertEqual(out, '0xcbf43926\n')

    def test_hex_input_unpaired_nibble(self):
        path = self._write('odd.hex', b'3132333')
        code, _, err = self._run('-q', '-i', 'hex', '-c', CRC32, path)
        self.assertEqual(code, 1)
        self.assertIn('unpaired nibble at the end of input stream: 3', err)

    def test_hex_input_invalid_character(self):
        path = self._write('bad.hex', b'31 3g')
        code, _, err = self._run('-q', '-i', 'hex', '-c', CRC32, path)
        self.assertEqual(code, 1)
        self.assertIn('invalid input character', err)

    def test_interim_remainder_and_continue(self):
        first = self._write('first.bin', b'1234')
        second = self._write('second.bin', b'56789')
        code, out, _ = self._run('-qr', '-c', CRC32, first)
        self.assertEqual(code, 0)
        remainder = out.strip()
        code, out, _ = self._run('-q', '-k', remainder, '-c', CRC32, second)
        self.assertEqual(code, 0)
        self.assertEqual(out, '0xcbf43926\n')

    def test_continue_from_out_of_range(self):
        path = self._write('check.bin', b'123456789')
        code, _, err = self._run('-q', '-k', '0x1ffff', '-c', 'width=16 poly=0x1021', path)
        self.assertEqual(code, 1)
        self.assertIn('does not fit in 16 bits', err)

    def test_table(self):
        path = self._write('empty.bin', b'')
        code, out, _ = self._run('-qt', '-c', CRC32, path)
        self.assertEqual(code, 0)
        lines = out.splitlines()
        self.assertEqual(len(lines), 64)
        self.assertEqual(lines[0], '0x00000000, 0x77073096, 0xee0e612c, 0x990951ba,')
        code, out, _ = self._run('-t', '-c', 'width=8 poly=0x07', path)
        lines = out.splitlines()
        self.assertTrue(lines[0].startswith('# CrcTable(width=8, poly=0x07'))
        self.assertEqual(len(lines), 1 + 32)
        self.assertEqual(lines[1], '0x00, 0x07, 0x0e, 0x09, 0x1c, 0x1b, 0x12, 0x15,')

    def test_invalid_parameters(self):
        path = self._write('check.bin', b'123456789')
        for params in ('width=12 poly=0x80f', 'width=8', 'width=8 poly=0x07 refin=maybe'):
            code, out, err = self._run('-q', '-c', params, path)
            self.assertEqual(code, 1, params)
            self.assertEqual(out, '')
            self.assertIn('invalid CRC parameters', err)

    def test_catalogue_line_with_reflected_init(self):
        path = self._write('check.bin', b'123456789')
        riello = ('width=16 poly=0x1021 init=0xb2aa refin=true refout=true '
                  'xorout=0x0000 check=0x63d0 residue=0x0000 name="CRC-16/RIELLO"')
        code, out, err = self._run('-q', '-c', riello, path)
        self.assertEqual(code, 0, err)
        self.assertEqual(out, '0x63d0\n')

    def test_check_value_mismatch(self):
        path = self._write('check.bin', b'123456789')
        code, out, err = self._run('-q', '-c', CRC32 + ' check=0x12345678', path)
        self.assertEqual(code, 1)
        self.assertEqual(out, '')
        self.assertIn('expected 0x12345678, got 0xcbf43926', err)

    def test_check_value_match(self):
        path = self._write('other.bin', b'hello')
        code, out, _ = self._run('-q', '-c', CRC32_POSIX + ' check=0x765e7680', path)
        self.assertEqual(code, 0)
        spec = rocksoft_crc.CrcTable(0x04c11db7, 0, False, False, 0xffffffff)
        self.assertEqual(out, '0x{:08x}\n'.format(spec.checksum(b'hello')))

    def test_missing_crc_prints_help(self):
        path = self._write('check.bin', b'123456789')
        code, out, _ = self._run(path)
        self.assertEqual(code, 2)
        self.assertIn('usage:', out)

    def test_empty_input(self):
        path = self._write('empty.bin', b'')
        _, out, _ = self._run('-q', '-c', CRC32, path)
        self.assertEqual(out, '0x00000000\n')


if __name__ == '__main__':
    unittest.main()
