"""Unit tests for the TicketDive event extractor."""
from unittest.mock import patch

import processor.event_extractor as event_extractor
from processor.event_extractor import (
    clean_event_name,
    clean_markup,
    find_event_ids,
    is_valid_event_name,
    is_valid_venue_name,
    iter_ticketdive_events,
    parse_ticketdive_html,
    select_nearest_event,
)
from processor.models import EventCandidate


SPACER = '<div class="spacer"></div>\n' * 50


def event_card(event_id, title_html, date, venue_html):
    return (
        f'<a href="/event/{event_id}" class="event-card">\n'
        f'<div class="event-title">{title_html}</div>\n'
        f'<div class="event-date">{date}</div>\n'
        f'{venue_html}\n'
        f'</a>\n'
    )


def page(*cards):
    return '<html>\n<body>\n' + SPACER.join(cards) + '</body>\n</html>'


SINGLE_EVENT_HTML = page(
    event_card('abc123', '春の単独公演', '2026/3/15', '<div class="event-venue">Zepp Tokyo</div>')
)


class TestParseTicketDiveHtml:
    """Test cases for parse_ticketdive_html."""

    def test_single_event(self):
        """Test extraction of one well-formed event block."""
        events = parse_ticketdive_html(SINGLE_EVENT_HTML)

        assert events == [
            EventCandidate(
                event_name='春の単独公演',
                event_date='2026/3/15',
                venue_name='Zepp Tokyo',
                event_url='https://ticketdive.com/event/abc123'
            )
        ]

    def test_no_event_links(self):
        """Test that a page without event links yields nothing."""
        html = '<html><body><a href="/artist/foo">Artist</a><p>2026/3/15</p></body></html>'
        assert parse_ticketdive_html(html) == []

    def test_empty_document(self):
        """Test that an empty document yields nothing."""
        assert parse_ticketdive_html('') == []

    def test_event_without_date_is_skipped(self):
        """Test that a candidate without a date token is never emitted."""
        html = page(
            event_card('nodate', '春の単独公演', '日程調整中', '<div class="venue">Zepp Tokyo</div>')
        )
        assert parse_ticketdive_html(html) == []

    def test_date_must_have_four_digit_year(self):
        """Test that short-year dates are not accepted."""
        html = page(
            event_card('shortyear', '春の単独公演', '26/3/15', '<div class="venue">Zepp Tokyo</div>')
        )
        assert parse_ticketdive_html(html) == []

    def test_multiple_events_in_link_order(self):
        """Test extraction of several separated event blocks."""
        html = page(
            event_card('abc123', '春の単独公演', '2026/3/15', '<div class="event-venue">Zepp Tokyo</div>'),
            event_card('def456', '冬のワンマンライブ', '2026/2/1', '<span class="venue">Spotify O-EAST</span>')
        )

        events = parse_ticketdive_html(html)

        assert [event.event_name for event in events] == ['春の単独公演', '冬のワンマンライブ']
        assert [event.event_date for event in events] == ['2026/3/15', '2026/2/1']
        assert [event.venue_name for event in events] == ['Zepp Tokyo', 'Spotify O-EAST']
        assert events[1].event_url == 'https://ticketdive.com/event/def456'

    def test_name_closest_to_date_wins(self):
        """Test that the fragment nearest the date is preferred."""
        html = page(
            event_card('abc', '夏のワンマンライブ | 受付中', '2026/8/1', '<div class="venue">LIQUIDROOM</div>')
        )

        events = parse_ticketdive_html(html)

        assert len(events) == 1
        assert events[0].event_name == '夏のワンマンライブ'

    def test_css_leak_is_never_a_name(self):
        """Test that CSS text before the date is skipped."""
        html = page(
            event_card('css', '秋の対バン企画 | padding: 12px', '2026/10/3', '<div class="venue">渋谷WWW</div>')
        )

        events = parse_ticketdive_html(html)

        assert len(events) == 1
        assert events[0].event_name == '秋の対バン企画'

    def test_reception_prefix_is_removed(self):
        """Test cleanup of a reception-status prefix and brackets."""
        html = page(
            event_card('pre', '申込受付中『春の単独公演』', '2026/3/15', '<div class="venue">Zepp Tokyo</div>')
        )

        events = parse_ticketdive_html(html)

        assert len(events) == 1
        assert events[0].event_name == '春の単独公演'

    def test_location_class_venue(self):
        """Test venue extraction from a location element."""
        html = page(
            event_card('loc', '春の単独公演', '2026/3/15', '<div class="event-location">恵比寿LIQUIDROOM</div>')
        )

        events = parse_ticketdive_html(html)

        assert events[0].venue_name == '恵比寿LIQUIDROOM'

    def test_paragraph_venue(self):
        """Test venue extraction from a paragraph element."""
        html = page(
            event_card('para', '春の単独公演', '2026/3/15', '<p class="Venue">下北沢SHELTER</p>')
        )

        events = parse_ticketdive_html(html)

        assert events[0].venue_name == '下北沢SHELTER'

    def test_venue_fallback_ignores_svg_icon(self):
        """Test positional venue fallback when the venue has no class hint."""
        venue_html = (
            '<div class="place"><svg viewBox="0 0 24 24">'
            '<path fill-rule="evenodd" clip-rule="evenodd" d="M12 2C8 2 5 5 5 9"/>'
            '</svg>渋谷WWW X</div>'
        )
        html = page(event_card('svg', '春の単独公演', '2026/3/15', venue_html))

        events = parse_ticketdive_html(html)

        assert len(events) == 1
        assert events[0].venue_name == '渋谷WWW X'

    def test_placeholder_venue_discards_event(self):
        """Test that an undecided venue drops the whole candidate."""
        html = page(
            event_card('tbd', '春の単独公演', '2026/3/15', '<div class="venue">会場未定</div>')
        )
        assert parse_ticketdive_html(html) == []

    def test_missing_name_discards_event(self):
        """Test that a boilerplate-only name drops the whole candidate."""
        html = page(
            event_card('noname', '受付中', '2026/3/15', '<div class="venue">Zepp Tokyo</div>')
        )
        assert parse_ticketdive_html(html) == []

    def test_event_url_comes_from_template(self):
        """Test that URLs found in the page are never used."""
        html = page(
            event_card(
                'xyz789',
                '春の単独公演',
                '2026/3/15',
                '<div class="venue">Zepp Tokyo</div><a href="https://example.com/buy">buy</a>'
            )
        )

        events = parse_ticketdive_html(html)

        assert events[0].event_url == 'https://ticketdive.com/event/xyz789'

    def test_emitted_values_pass_filters_again(self):
        """Test that accepted names and venues stay valid."""
        html = page(
            event_card('a1', '申込受付中「春の単独公演」', '2026/3/15', '<div class="venue">Zepp Tokyo</div>'),
            event_card('a2', '秋の対バン企画 | padding: 12px', '2026/10/3', '<p>渋谷WWW</p>')
        )

        events = parse_ticketdive_html(html)

        assert events
        for event in events:
            assert is_valid_event_name(event.event_name)
            assert is_valid_venue_name(event.venue_name)

    def test_iterator_is_lazy_and_restartable(self):
        """Test that the iterator can be consumed repeatedly."""
        first = list(iter_ticketdive_events(SINGLE_EVENT_HTML))
        second = list(iter_ticketdive_events(SINGLE_EVENT_HTML))

        assert first == second
        assert len(first) == 1


class TestMarkupHelpers:
    """Test cases for markup preprocessing."""

    def test_clean_markup_removes_svg(self):
        """Test removal of svg blocks, paths and path attributes."""
        html = (
            '<span><svg width="16"><path d="M0 0L1 1"/></svg>Zepp</span>'
            '<path fill="red">'
            '<g fill-rule="evenodd" clip-rule="evenodd"></g>'
        )

        cleaned = clean_markup(html)

        assert 'svg' not in cleaned
        assert '<path' not in cleaned
        assert 'fill-rule' not in cleaned
        assert 'clip-rule' not in cleaned
        assert 'Zepp' in cleaned

    def test_find_event_ids(self):
        """Test event id discovery in document order."""
        html = (
            '<a href="/event/one">1</a>'
            '<a href="/artist/someone">artist</a>'
            '<a href="/event/two">2</a>'
            '<a href="/event/one">again</a>'
        )

        assert find_event_ids(html) == ['one', 'two', 'one']


class TestValidityFilters:
    """Test cases for name and venue validity filters."""

    def test_valid_event_names(self):
        assert is_valid_event_name('春の単独公演')
        assert is_valid_event_name('TOKYO IDOL FESTIVAL 2026')

    def test_boilerplate_event_names(self):
        """Test rejection of placeholder and boilerplate phrases."""
        assert not is_valid_event_name('受付中')
        assert not is_valid_event_name('申込受付中')
        assert not is_valid_event_name('イベント')
        assert not is_valid_event_name('未定')
        assert not is_valid_event_name('日程未定のお知らせ')
        assert not is_valid_event_name('チケットの分配について')

    def test_markup_leaks_in_event_names(self):
        """Test rejection of CSS, tag and template leaks."""
        assert not is_valid_event_name('padding: 4px')
        assert not is_valid_event_name('margin-top')
        assert not is_valid_event_name('font-weight bold')
        assert not is_valid_event_name('line 1.5rem')
        assert not is_valid_event_name('<b>公演名</b>')
        assert not is_valid_event_name('a; b; c')
        assert not is_valid_event_name('Event abc123')
        assert not is_valid_event_name('19:00')
        assert not is_valid_event_name('12 34 56')

    def test_event_name_length_bounds(self):
        assert not is_valid_event_name('')
        assert not is_valid_event_name(None)
        assert not is_valid_event_name('ab')
        assert not is_valid_event_name('あ' * 201)

    def test_valid_venue_names(self):
        assert is_valid_venue_name('Zepp Tokyo')
        assert is_valid_venue_name('渋谷')

    def test_invalid_venue_names(self):
        """Test rejection of placeholders and SVG leakage."""
        assert not is_valid_venue_name('会場未定')
        assert not is_valid_venue_name('未定')
        assert not is_valid_venue_name('受付中')
        assert not is_valid_venue_name('path fill')
        assert not is_valid_venue_name('svg icon')
        assert not is_valid_venue_name('evenodd')
        assert not is_valid_venue_name('d="M0 0"')
        assert not is_valid_venue_name('<span>Zepp</span>')
        assert not is_valid_venue_name('   ')
        assert not is_valid_venue_name('x')

    def test_clean_event_name(self):
        """Test reception prefix and bracket cleanup."""
        assert clean_event_name('申込受付中『春の単独公演』') == '春の単独公演'
        assert clean_event_name('受付中 「夏の対バン」') == '夏の対バン'
        assert clean_event_name('春の単独公演') == '春の単独公演'


class TestSelectNearestEvent:
    """Test cases for nearest event selection."""

    @staticmethod
    def _candidate(name, event_date):
        return EventCandidate(
            event_name=name,
            event_date=event_date,
            venue_name='Zepp Tokyo',
            event_url=f'https://ticketdive.com/event/{name}'
        )

    def test_earliest_date_is_selected(self):
        """Test that the nearest date wins regardless of padding."""
        march = self._candidate('march', '2026/3/15')
        february = self._candidate('february', '2026/2/01')

        assert select_nearest_event([march, february]) is february

    def test_equal_dates_keep_discovery_order(self):
        first = self._candidate('first', '2026/5/5')
        second = self._candidate('second', '2026/05/05')

        assert select_nearest_event([first, second]) is first

    def test_invalid_dates_sort_last(self):
        invalid = self._candidate('invalid', '2026/13/40')
        valid = self._candidate('valid', '2027/1/1')

        assert select_nearest_event([invalid, valid]) is valid

    def test_no_candidates(self):
        assert select_nearest_event([]) is None


class TestEventLinkMatching:
    """Test cases for literal event link matching."""

    def test_href_with_entities_is_kept_verbatim(self):
        """Test that an href with encoded characters still yields its event."""
        html = page(
            event_card('abc?x=1&amp;y=2', '春の単独公演', '2026/3/15', '<div class="venue">Zepp Tokyo</div>')
        )

        events = parse_ticketdive_html(html)

        assert len(events) == 1
        assert events[0].event_url == 'https://ticketdive.com/event/abc?x=1&amp;y=2'

    def test_single_quoted_href_is_ignored(self):
        """Test that only double-quoted event links are recognised."""
        html = (
            "<html><body><a href='/event/abc' class=\"event-card\">\n"
            '<div class="event-title">春の単独公演</div>\n'
            '<div class="event-date">2026/3/15</div>\n'
            '<div class="venue">Zepp Tokyo</div>\n'
            '</a></body></html>'
        )

        assert find_event_ids(html) == []
        assert parse_ticketdive_html(html) == []


def spaced_event_html(before_title='', before_date='', before_venue=''):
    return (
        '<html><body>'
        '<a href="/event/spaced" class="event-card"></a>\n'
        f'{before_title}'
        '<div class="event-title">春の単独公演</div>'
        f'{before_date}'
        '<div class="event-date">2026/3/15</div>'
        f'{before_venue}'
        '<div class="venue">Zepp Tokyo</div>'
        '</body></html>'
    )


class TestWindowBoundaries:
    """Test cases for the fixed search windows around each event link."""

    def test_date_within_context_after_link(self):
        html = spaced_event_html(before_title=' ' * 6500)

        events = parse_ticketdive_html(html)

        assert len(events) == 1
        assert events[0].event_date == '2026/3/15'

    def test_date_beyond_context_after_link_is_skipped(self):
        """Test that a date more than 7000 characters after the link is ignored."""
        html = spaced_event_html(before_title=' ' * 7100)

        assert parse_ticketdive_html(html) == []

    def test_name_within_lookbehind(self):
        html = spaced_event_html(before_date=' ' * 900)

        events = parse_ticketdive_html(html)

        assert len(events) == 1
        assert events[0].event_name == '春の単独公演'

    def test_name_beyond_lookbehind_discards_event(self):
        """Test that a title more than 1000 characters before the date is ignored."""
        html = spaced_event_html(before_date=' ' * 1100)

        assert parse_ticketdive_html(html) == []

    def test_venue_within_lookahead(self):
        html = spaced_event_html(before_venue=' ' * 900)

        events = parse_ticketdive_html(html)

        assert len(events) == 1
        assert events[0].venue_name == 'Zepp Tokyo'

    def test_venue_beyond_lookahead_discards_event(self):
        """Test that a venue more than 1000 characters after the date is ignored."""
        html = spaced_event_html(before_venue=' ' * 1100)

        assert parse_ticketdive_html(html) == []


class TestCandidateIsolation:
    """Test cases for per-candidate error isolation."""

    def test_failing_candidate_does_not_abort_scan(self):
        """Test that an error on one event leaves the others extracted."""
        html = page(
            event_card('abc123', '春の単独公演', '2026/3/15', '<div class="event-venue">Zepp Tokyo</div>'),
            event_card('def456', '冬のワンマンライブ', '2026/2/1', '<span class="venue">Spotify O-EAST</span>')
        )
        extract_candidate = event_extractor._extract_candidate

        def flaky_extract(cleaned, event_id):
            if event_id == 'abc123':
                raise ValueError('broken markup')
            return extract_candidate(cleaned, event_id)

        with patch.object(event_extractor, '_extract_candidate', side_effect=flaky_extract):
            events = parse_ticketdive_html(html)

        assert [event.event_url for event in events] == ['https://ticketdive.com/event/def456']
