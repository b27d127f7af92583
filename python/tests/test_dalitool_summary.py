import io

from dalilink.mseed import MSRecord, parse_record
from dalilink.timeutil import timestr_to_dltime

from dalitool.summary import packet_synopsis, print_samples, summarize_packet

from dl_stubs import build_mseed2, build_mseed3, make_packet

START = timestr_to_dltime("2024-02-01T12:30:15")
SAMPLES = list(range(100, 113))


def _packet(data: bytes, streamid: str = "IU_ANMO_00_BHZ/MSEED"):
    return make_packet(11, streamid=streamid, data=data, start=START)


def test_synopsis_line():
    packet = _packet(b"x" * 512)
    now = packet.pkttime + 1_500_000
    text = packet_synopsis(packet, now=now)
    assert text == (
        "IU_ANMO_00_BHZ/MSEED (11), 2024,032,12:30:15.000000, 512 (data: 2.9 sec, feed: 1.5 sec)"
    )


def test_sample_tiers_six_per_line():
    record = parse_record(build_mseed2(SAMPLES))
    first = io.StringIO()
    print_samples(record, 1, sink=first)
    assert first.getvalue().splitlines() == ["".join(f"{value:10d}  " for value in SAMPLES[:6])]
    everything = io.StringIO()
    print_samples(record, 2, sink=everything)
    rows = everything.getvalue().splitlines()
    assert len(rows) == 3
    assert [len(row.split()) for row in rows] == [6, 6, 1]


def test_summarize_with_details_and_samples():
    sink = io.StringIO()
    rc = summarize_packet(_packet(build_mseed2(SAMPLES)), details=1, samples=2, sink=sink, now=START)
    assert rc == 0
    lines = sink.getvalue().splitlines()
    assert lines[0].startswith("IU_ANMO_00_BHZ/MSEED (11), ")
    assert lines[1].startswith("FDSN:IU_ANMO_00_B_H_Z, 2, 512, 13 samples, 20 Hz, 2024,032,12:30:15")
    assert len(lines) == 5


def test_summarize_mseed3_floats():
    sink = io.StringIO()
    packet = _packet(build_mseed3([1.5, -2.0]), streamid="XX_TEST__HHZ/MSEED3")
    assert summarize_packet(packet, details=3, samples=1, sink=sink, now=START) == 0
    out = sink.getvalue()
    assert "payload encoding: 32-bit float (IEEE single)" in out
    assert out.splitlines()[-1].split() == ["1.5", "-2"]


def test_summarize_unknown_type_keeps_synopsis():
    sink = io.StringIO()
    rc = summarize_packet(_packet(b"{}", streamid="XX_TEST/JSON"), details=1, sink=sink, now=START)
    assert rc == -1
    assert sink.getvalue().splitlines() == [packet_synopsis(_packet(b"{}", streamid="XX_TEST/JSON"), now=START)]


def test_summarize_bad_payload_reports_failure():
    sink = io.StringIO()
    assert summarize_packet(_packet(b"garbage"), details=1, sink=sink, now=START) == -1
    assert len(sink.getvalue().splitlines()) == 1


def test_summarize_appends_raw_payload_to_dump():
    dump = io.BytesIO()
    data = build_mseed2([1, 2, 3])
    summarize_packet(_packet(data), sink=io.StringIO(), dump=dump, now=START)
    summarize_packet(_packet(data), sink=io.StringIO(), dump=dump, now=START)
    assert dump.getvalue() == data + data


def test_text_samples_printed_as_block():
    record = MSRecord(
        sid="FDSN:XX_TEST__L_O_G", formatversion=3, reclen=0, starttime=0, samprate=0.0, numsamples=4, encoding=0, text="ABCD"
    )
    sink = io.StringIO()
    print_samples(record, 1, sink=sink)
    assert sink.getvalue() == "ASCII Data:\nABCD\n"
