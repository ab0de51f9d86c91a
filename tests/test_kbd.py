from xv6fs.kbd import KEY_DN, KEY_UP, KeyboardDecoder, Modifier


def test_plain_letters():
    assert KeyboardDecoder().decode([0x23, 0x17]) == [ord("h"), ord("i")]


def test_release_produces_nothing():
    dec = KeyboardDecoder()
    assert dec.feed(0x1E) == ord("a")
    assert dec.feed(0x9E) is None


def test_shift_press_and_release():
    dec = KeyboardDecoder()
    assert dec.decode([0x2A, 0x1E, 0x02]) == [ord("A"), ord("!")]
    assert Modifier.SHIFT in dec.modifiers
    assert dec.decode([0xAA, 0x1E]) == [ord("a")]
    assert Modifier.SHIFT not in dec.modifiers


def test_capslock_toggles_letters_only():
    dec = KeyboardDecoder()
    assert dec.decode([0x3A, 0xBA, 0x1E, 0x02]) == [ord("A"), ord("1")]
    assert dec.decode([0x2A, 0x1E, 0xAA]) == [ord("a")]
    assert dec.decode([0x3A, 0xBA, 0x1E]) == [ord("a")]


def test_control_letters():
    dec = KeyboardDecoder()
    assert dec.decode([0x1D, 0x1E]) == [ord("A") - ord("@")]
    assert dec.decode([0x9D, 0x1E]) == [ord("a")]


def test_escaped_keys():
    dec = KeyboardDecoder()
    assert dec.decode([0xE0, 0x48, 0xE0, 0xC8]) == [KEY_UP]
    assert dec.decode([0xE0, 0x50]) == [KEY_DN]
    assert dec.decode([0xE0, 0x1C]) == [ord("\n")]
    assert Modifier.E0ESC not in dec.modifiers


def test_right_control_via_escape():
    dec = KeyboardDecoder()
    assert dec.decode([0xE0, 0x1D, 0x13]) == [ord("R") - ord("@")]
    assert dec.decode([0xE0, 0x9D, 0x13]) == [ord("r")]


def test_unmapped_key_is_ignored():
    dec = KeyboardDecoder()
    assert dec.feed(0x3B) is None
    assert dec.decode([0x38, 0x1E]) == [ord("a")]