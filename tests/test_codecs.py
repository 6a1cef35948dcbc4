import io
import unittest
import sys
import os

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

import button_mapping as bm
import macro_codec as mc
import mouse_attributes as attrs
import mouse_keycodes as kc
from mouse_m913 import M913_LIGHTMODE_VALUES, M913_REPORT_RATE_VALUES
from mouse_types import (InvalidLightMode, InvalidReportRate, LightMode, RangeError, ReportRate,
                         UnknownButtonName, UnknownMapping)


class TestCodeTables(unittest.TestCase):
    def test_tables_are_injective(self):
        for table in (kc.SPECIAL_CODES, kc.MOUSE_BUTTON_CODES, kc.KEYBOARD_KEY_VALUES,
                      kc.KEYBOARD_MODIFIER_VALUES, kc.SNIPE_DPI_VALUES, kc.LIGHTMODE_VALUES,
                      kc.LIGHTMODE_EXTENDED_VALUES, kc.REPORT_RATE_VALUES,
                      M913_LIGHTMODE_VALUES, M913_REPORT_RATE_VALUES):
            self.assertTrue(attrs.is_injective(table))

    def test_special_codes_do_not_shadow_mouse_buttons(self):
        self.assertFalse(set(kc.SPECIAL_CODES.values()) & set(kc.MOUSE_BUTTON_CODES.values()))

    def test_is_injective_detects_duplicates(self):
        self.assertFalse(attrs.is_injective({"a": b"\x01", "b": b"\x01"}))

    def test_string_tables(self):
        self.assertEqual(kc.LIGHTMODE_STRINGS[LightMode.BREATHING_RAINBOW], "breathing_rainbow")
        self.assertEqual(kc.REPORT_RATE_STRINGS[ReportRate.R_500HZ], "500Hz")


class TestButtonMapping(unittest.TestCase):
    def test_decode_plain_key(self):
        self.assertEqual(bm.decode_button_mapping(bytes([0x90, 0x00, 0x04, 0x00])), "a")

    def test_keyboard_with_modifiers(self):
        code = bm.encode_button_mapping("ctrl_l+shift_l+a")
        self.assertEqual(code, bytes([0x90, 0x03, 0x04, 0x00]))
        self.assertEqual(bm.decode_button_mapping(code), "ctrl_l+shift_l+a")

    def test_key_lookup_is_case_insensitive(self):
        self.assertEqual(bm.encode_button_mapping("ALT_L+f4"), bytes([0x90, 0x04, 0x3D, 0x00]))
        self.assertEqual(bm.decode_button_mapping(bytes([0x90, 0x04, 0x3D, 0x00])), "alt_l+F4")

    def test_special_functions(self):
        self.assertEqual(bm.encode_button_mapping("dpi+"), bytes([0x8A, 0x00, 0x00, 0x00]))
        self.assertEqual(bm.encode_button_mapping("dpi-"), bytes([0x89, 0x00, 0x00, 0x00]))
        self.assertEqual(bm.encode_button_mapping("profile_switch"), bytes([0x8D, 0x00, 0x00, 0x00]))
        self.assertEqual(bm.decode_button_mapping(bytes(4)), "none")
        self.assertEqual(bm.decode_button_mapping(bytes([0x8F, 0x0F, 0x00, 0x00])), "macro15")
        self.assertEqual(bm.encode_button_mapping("media_vol_up"), bytes([0x8E, 0xE9, 0x00, 0x00]))

    def test_mouse_buttons(self):
        self.assertEqual(bm.encode_button_mapping("left"), bytes([0x81, 0x00, 0x00, 0x00]))
        self.assertEqual(bm.encode_button_mapping("forward"), bytes([0x85, 0x00, 0x00, 0x00]))
        self.assertEqual(bm.decode_button_mapping(bytes([0x82, 0x00, 0x00, 0x00])), "right")

    def test_fire_and_snipe(self):
        code = bm.encode_button_mapping("fire:left:3:100")
        self.assertEqual(code, bytes([0x92, 0x03, 0x01, 0x64]))
        self.assertEqual(bm.decode_button_mapping(code), "fire:left:3:100")
        self.assertEqual(bm.encode_button_mapping("snipe:800"), bytes([0x8B, 0x08, 0x00, 0x00]))
        self.assertEqual(bm.decode_button_mapping(bytes([0x8B, 0x08, 0x00, 0x00])), "snipe:800")

    def test_factory_fire_code(self):
        # read back from an untouched M908
        self.assertEqual(bm.decode_button_mapping(bytes([0x92, 0x03, 0x01, 0x00])), "fire:left:3:0")

    def test_fire_with_unknown_button_bits(self):
        with self.assertRaises(UnknownMapping):
            bm.decode_button_mapping(bytes([0x92, 0x03, 0x03, 0x00]))

    def test_model_specific_type_bytes(self):
        tables = bm.ButtonTables(keyboard_type=0x05, fire_type=0x04,
                                 fire_layout=("delay", "repeat", "zero"),
                                 fire_buttons=("left",), snipe_type=None)
        self.assertEqual(bm.encode_button_mapping("shift_l+a", tables), bytes([0x05, 0x02, 0x04, 0x00]))
        self.assertEqual(bm.encode_button_mapping("fire:left:3:40", tables), bytes([0x04, 0x28, 0x03, 0x00]))
        self.assertEqual(bm.decode_button_mapping(bytes([0x04, 0x28, 0x03, 0x00]), tables), "fire:left:3:40")
        with self.assertRaises(UnknownButtonName):
            bm.encode_button_mapping("snipe:800", tables)
        with self.assertRaises(UnknownMapping):
            bm.decode_button_mapping(bytes([0x04, 0x28, 0x03, 0x01]), tables)

    def test_canonical_strings_round_trip(self):
        for name in bm.BASE_BUTTON_TABLES.vocabulary():
            code = bm.encode_button_mapping(name)
            self.assertEqual(bm.decode_button_mapping(code), name)
            self.assertEqual(bm.encode_button_mapping(bm.decode_button_mapping(code)), code)

    def test_unknown_code(self):
        with self.assertRaises(UnknownMapping):
            bm.decode_button_mapping(bytes([0xEE, 0x00, 0x00, 0x00]))
        with self.assertRaises(UnknownMapping):
            bm.decode_button_mapping(bytes([0x90, 0x00, 0x04]))

    def test_unknown_names(self):
        for text in ("", "hyper+a", "ctrl_l+nokey", "fire:forward:1:1", "fire:left:1",
                     "fire:left:300:1", "snipe:850", "snipe:fast"):
            with self.assertRaises(UnknownButtonName, msg=text):
                bm.encode_button_mapping(text)

    def test_lookup_errors_are_lookup_errors(self):
        with self.assertRaises(LookupError):
            bm.encode_button_mapping("nothing")


class TestMacroCodec(unittest.TestCase):
    def test_encode_basic(self):
        result = mc.encode_macro("down key a\ndelay 50\nup key a\n")
        self.assertTrue(result.ok)
        self.assertEqual(result.commands, 3)
        self.assertEqual(result.data[:9], bytes([0x84, 0x04, 0x00, 0x06, 0x32, 0x00, 0x04, 0x04, 0x00]))
        self.assertEqual(len(result.data), 256)
        self.assertFalse(any(result.data[9:]))

    def test_decode_lines_match_script(self):
        script = "down key a\ndelay 50\nup key a\ndown button left\nup button left\n"
        out = io.StringIO()
        invalid = mc.decode_macro(mc.encode_macro(script).data, out)
        self.assertEqual(invalid, 0)
        self.assertEqual(out.getvalue(), script)

    def test_prefix_and_offset(self):
        result = mc.encode_macro(["down key b", "up key b"], offset=8)
        self.assertFalse(any(result.data[:8]))
        out = io.StringIO()
        mc.decode_macro(result.data, out, prefix=";## ", offset=8)
        self.assertEqual(out.getvalue(), ";## down key b\n;## up key b\n")

    def test_offset_past_end_restarts_at_zero(self):
        data = bytes([0x06, 0x0A, 0x00]) + bytes(253)
        commands, invalid = mc.parse_macro(data, offset=400)
        self.assertEqual([str(c) for c in commands], ["delay 10"])
        self.assertEqual(invalid, 0)

    def test_invalid_opcode_stops_decoding(self):
        data = bytes([0x84, 0x04, 0x00, 0x77, 0x00, 0x00, 0x04, 0x04, 0x00])
        out = io.StringIO()
        invalid = mc.decode_macro(data, out)
        self.assertEqual(invalid, 1)
        self.assertEqual(out.getvalue(), "down key a\n")

    def test_unknown_operand_is_counted(self):
        out = io.StringIO()
        invalid = mc.decode_macro(bytes([0x84, 0xFF, 0x00]), out)
        self.assertEqual(invalid, 1)
        self.assertEqual(out.getvalue(), "down key 0xff\n")

    def test_iter_macro(self):
        data = mc.encode_macro("down button right\ndelay 7").data
        commands = list(mc.iter_macro(data))
        self.assertEqual(commands, [mc.MacroCommand("down", "button", "right"),
                                    mc.MacroCommand("delay", None, 7)])
        self.assertEqual(commands[0].to_bytes(), bytes([0x81, 0x02, 0x00]))

    def test_truncated_command(self):
        _, invalid = mc.parse_macro(bytes([0x84, 0x04]))
        self.assertEqual(invalid, 1)

    def test_long_delay_is_split(self):
        result = mc.encode_macro("delay 600")
        self.assertEqual(result.commands, 3)
        self.assertEqual(result.data[:9], bytes([0x06, 0xFF, 0x00, 0x06, 0xFF, 0x00, 0x06, 0x5A, 0x00]))

    def test_huge_delay_stops_at_buffer_end(self):
        result = mc.encode_macro("delay 300000000\nup key a")
        self.assertEqual(result.commands, 85)
        self.assertTrue(result.truncated)
        self.assertEqual(result.data[-4:], bytes([0x06, 0xFF, 0x00, 0x00]))

        result = mc.encode_macro(["down key a"] * 83 + ["delay 510"])
        self.assertEqual(result.commands, 85)
        self.assertFalse(result.truncated)

    def test_line_parser_respects_limit(self):
        self.assertEqual(len(mc._parse_line(["delay", "300000000"])), 85)
        self.assertEqual(len(mc._parse_line(["delay", "300000000"], 4)), 4)

    def test_trailing_byte_is_invalid(self):
        out = io.StringIO()
        invalid = mc.decode_macro(bytes([0x84, 0x04, 0x01, 0x04, 0x04, 0x00]), out)
        self.assertEqual(invalid, 1)
        self.assertEqual(out.getvalue(), "down key a\nup key a\n")

    def test_zero_delay_is_invalid(self):
        out = io.StringIO()
        invalid = mc.decode_macro(bytes([0x84, 0x04, 0x00, 0x06, 0x00, 0x00, 0x04, 0x04, 0x00]), out)
        self.assertEqual(invalid, 1)
        self.assertEqual(out.getvalue(), "down key a\nup key a\n")
        # what was printed encodes cleanly again
        self.assertTrue(mc.encode_macro(out.getvalue()).ok)

    def test_bad_lines_are_skipped(self):
        result = mc.encode_macro("down key a\njump key a\ndelay soon\n# only a comment\nup key a")
        self.assertEqual(result.commands, 2)
        self.assertEqual(result.skipped, 2)
        self.assertFalse(result.ok)

    def test_buffer_full_truncates(self):
        result = mc.encode_macro(["down key a"] * 100)
        self.assertEqual(result.commands, 85)
        self.assertTrue(result.truncated)

    def test_repeat_line(self):
        result = mc.encode_macro("repeat 3\ndown key a\nup key a")
        self.assertEqual(result.repeat, 3)
        self.assertEqual(result.commands, 2)
        self.assertIsNone(mc.encode_macro("down key a").repeat)

    def test_bad_offset(self):
        with self.assertRaises(RangeError):
            mc.encode_macro("down key a", offset=256)


class TestEventMacroCodec(unittest.TestCase):
    def test_events_and_check_byte(self):
        result = mc.encode_event_macro("down key a\ndelay 3\nup key a")
        self.assertTrue(result.ok)
        self.assertEqual(result.commands, 2)
        self.assertFalse(any(result.data[:0x1F]))
        self.assertEqual(result.data[0x1F], 2)
        self.assertEqual(result.data[0x20:0x2A],
                         bytes([0x81, 0x04, 0x00, 0x00, 0x03, 0x41, 0x04, 0x00, 0x00, 0x03]))
        self.assertEqual(result.data[0x2A:0x2E], bytes([0x83, 0x00, 0x00, 0x00]))
        self.assertFalse(any(result.data[0x2E:]))

    def test_last_event_gets_end_marker_delay(self):
        data = mc.encode_event_macro("down key a\nup key a").data
        self.assertEqual(data[0x25:0x2A], bytes([0x41, 0x04, 0x00, 0x00, 0x03]))
        self.assertEqual(data[0x20:0x25], bytes([0x81, 0x04, 0x00, 0x00, 0x00]))

    def test_delays_add_up_and_use_two_bytes(self):
        data = mc.encode_event_macro("down key b\ndelay 300\ndelay 200\nup key b\ndelay 10").data
        self.assertEqual(data[0x23:0x25], (500).to_bytes(2, "big"))
        out = io.StringIO()
        self.assertEqual(mc.decode_event_macro(data, out), 0)
        self.assertEqual(out.getvalue(), "down key b\ndelay 500\nup key b\ndelay 10\n")

    def test_lines_without_event_form_are_skipped(self):
        result = mc.encode_event_macro("delay 5\ndown button left\ndown key a\ndelay 70000\nup key a")
        self.assertEqual(result.skipped, 3)
        self.assertEqual(result.commands, 2)

    def test_buffer_holds_44_events(self):
        result = mc.encode_event_macro(["down key a", "up key a"] * 30)
        self.assertTrue(result.truncated)
        self.assertEqual(result.commands, 44)
        commands, invalid = mc.parse_event_macro(result.data)
        self.assertEqual(invalid, 0)
        self.assertEqual(len([c for c in commands if c.kind == "key"]), 44)

    def test_bad_check_byte_is_invalid(self):
        data = bytearray(mc.encode_event_macro("down key a\nup key a").data)
        data[0x2A] ^= 0xFF
        commands, invalid = mc.parse_event_macro(bytes(data))
        self.assertEqual(invalid, 1)
        self.assertEqual(len(commands), 3)

    def test_unknown_status_stops_decoding(self):
        data = bytearray(256)
        data[0x1F] = 2
        data[0x20:0x2A] = bytes([0x81, 0x04, 0x00, 0x00, 0x01, 0x33, 0x04, 0x00, 0x00, 0x03])
        out = io.StringIO()
        self.assertEqual(mc.decode_event_macro(bytes(data), out), 1)
        self.assertEqual(out.getvalue(), "down key a\ndelay 1\n")

    def test_empty_slot(self):
        self.assertEqual(mc.parse_event_macro(bytes(256)), ([], 0))
        self.assertEqual(mc.encode_event_macro("").data, bytes(256))


class TestAttributes(unittest.TestCase):
    def test_lightmode(self):
        self.assertEqual(attrs.decode_lightmode(b"\x01\x00"), LightMode.STATIC)
        self.assertEqual(attrs.encode_lightmode("wave"), b"\x04\x00")
        self.assertEqual(attrs.encode_lightmode(LightMode.RANDOM, kc.LIGHTMODE_EXTENDED_VALUES), b"\x08\x00")

    def test_lightmode_errors(self):
        with self.assertRaises(InvalidLightMode):
            attrs.encode_lightmode(LightMode.RANDOM)
        with self.assertRaises(InvalidLightMode):
            attrs.encode_lightmode("disco")
        with self.assertRaises(InvalidLightMode):
            attrs.decode_lightmode(b"\x09\x00")

    def test_report_rate(self):
        self.assertEqual(attrs.encode_report_rate("500Hz"), 0x02)
        self.assertEqual(attrs.encode_report_rate(125), 0x08)
        self.assertEqual(attrs.decode_report_rate(0x01), ReportRate.R_1000HZ)
        with self.assertRaises(InvalidReportRate):
            attrs.decode_report_rate(0x03)
        with self.assertRaises(InvalidReportRate):
            attrs.encode_report_rate(300)

    def test_raw_dpi(self):
        self.assertEqual(attrs.encode_dpi_raw("0x0400", 0x04, 0x8C, 0x00, 0x00), b"\x04\x00")
        self.assertEqual(attrs.encode_dpi_raw("0x8c", 0x04, 0x8C, 0x00, 0x00), b"\x8c\x00")
        self.assertEqual(attrs.decode_dpi_raw(b"\x04\x00"), "0x0400")
        for text in ("0x9000", "0x0401", "0x0300", "fast", "0x040000"):
            with self.assertRaises(RangeError, msg=text):
                attrs.encode_dpi_raw(text, 0x04, 0x8C, 0x00, 0x00)

    def test_dpi_scale(self):
        scale = attrs.DpiScale(200, 12400, 200)
        self.assertEqual(scale.encode(1600), bytes([0x08, 0x00]))
        self.assertEqual(scale.decode(bytes([0x08, 0x00])), 1600)
        self.assertEqual(scale.encode("12400"), bytes([0x3E, 0x00]))
        for bad in (100, 12600, 1700, "many"):
            with self.assertRaises(RangeError, msg=bad):
                scale.encode(bad)

    def test_sensor_dpi_scale_hits_known_points(self):
        points = ((1600, 0x12), (2400, 0x1B), (4900, 0x3A), (8900, 0x6A), (14100, 0xA8))
        scale = attrs.SensorDpiScale(100, 16000, 100, points=points)
        for dpi, value in points:
            self.assertEqual(scale.encode(dpi), bytes([value, 0x00]))
            self.assertEqual(scale.decode(bytes([value, 0x00])), dpi)
        self.assertEqual(scale.encode(100), bytes([0x01, 0x00]))

    def test_sensor_dpi_scale_round_trips_every_step(self):
        points = ((1600, 0x12), (2400, 0x1B), (4900, 0x3A), (8900, 0x6A), (14100, 0xA8))
        scale = attrs.SensorDpiScale(100, 16000, 100, points=points)
        for dpi in range(100, 16001, 100):
            self.assertEqual(scale.decode(scale.encode(dpi)), dpi, msg=dpi)
        with self.assertRaises(RangeError):
            scale.encode(150)


if __name__ == '__main__':
    unittest.main()
